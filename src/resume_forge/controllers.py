"""Controllers for resume-forge CLI commands."""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any

from resume_forge.ai.invoker import AiInvoker
from resume_forge.config import Settings
from resume_forge.ledger.payments import TOKEN_PACKAGES
from resume_forge.ledger.repository import LedgerRepository
from resume_forge.notifications import LoggingNotifier, Notifier
from resume_forge.pipeline.models import JobStatus
from resume_forge.pipeline.prefect_flow import pending_jobs_flow
from resume_forge.pipeline.processor import TaskProcessor
from resume_forge.pipeline.repository import PipelineJobRepository
from resume_forge.records.models import ApplicationCreate, MatchAnalysis
from resume_forge.records.repository import RecordsRepository
from resume_forge.scoring.calibrator import apply_skill_addition, calculate_score
from resume_forge.storage.database import Database, UserContext
from resume_forge.tasks.admission import AdmissionService
from resume_forge.tasks.executors import default_executors
from resume_forge.tasks.models import TaskType, TrackedTaskStatus
from resume_forge.tasks.picker import QueuePicker
from resume_forge.tasks.reaper import StaleTaskReaper
from resume_forge.tasks.repository import TaskRepository
from resume_forge.tasks.runner import TaskRunner


@dataclass(slots=True)
class DbCommand:
    db_path: Path | None


@dataclass(slots=True)
class TokensCreditCommand:
    """CLI input for a manual purchase credit."""

    db_path: Path | None
    reference: str
    tokens: int | None
    package_id: str | None


@dataclass(slots=True)
class TokensHistoryCommand:
    db_path: Path | None
    limit: int


@dataclass(slots=True)
class TaskCreateCommand:
    """CLI input for admitting one tracked task."""

    db_path: Path | None
    task_type: str
    job_path: Path | None = None
    resume_path: Path | None = None
    analysis_id: str | None = None
    skills: tuple[str, ...] = ()


@dataclass(slots=True)
class TaskListCommand:
    db_path: Path | None
    status: str | None
    limit: int


@dataclass(slots=True)
class TaskMutateCommand:
    """CLI input for inspect/cancel/delete operations."""

    db_path: Path | None
    task_id: str


@dataclass(slots=True)
class ApplicationCreateCommand:
    db_path: Path | None
    company_name: str
    job_title: str
    job_description_path: Path
    analysis_id: str | None


@dataclass(slots=True)
class ApplicationCommand:
    db_path: Path | None
    application_id: str


@dataclass(slots=True)
class WorkerCommand:
    """CLI input for the queue picker."""

    db_path: Path | None
    once: bool
    max_tasks: int | None
    max_idle_polls: int = 1


@dataclass(slots=True)
class JobsRunPendingCommand:
    db_path: Path | None
    limit: int
    use_prefect: bool


@dataclass(slots=True)
class JobsListCommand:
    db_path: Path | None
    status: str | None
    limit: int


class ResumeForgeCliController:
    """Coordinates ledger, task, application, and executor CLI operations."""

    def init_db(self, command: DbCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _database(settings):
            pass
        return [f"Database ready: {settings.db_path}"]

    def balance(self, command: DbCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _database(settings) as database:
            account = LedgerRepository(database, context=_context(settings)).get_account()
        return [
            f"User: {account.user_id}",
            f"Balance: {account.token_balance}",
            f"Used: {account.total_tokens_used}",
            f"Purchased: {account.total_tokens_purchased}",
        ]

    def credit(self, command: TokensCreditCommand) -> list[str]:
        tokens = command.tokens
        if tokens is None and command.package_id is not None:
            package = TOKEN_PACKAGES.get(command.package_id)
            if package is None:
                raise ValueError(f"Unknown token package: {command.package_id}")
            tokens = package.tokens
        if tokens is None:
            raise ValueError("Provide --tokens or --package.")

        settings = Settings.from_env(db_path=command.db_path)
        with _database(settings) as database:
            result = LedgerRepository(database, context=_context(settings)).credit(
                amount=tokens,
                external_ref=command.reference,
                description=(
                    f"Purchased {command.package_id} package"
                    if command.package_id
                    else f"Purchased {tokens} tokens"
                ),
                resource_id=command.package_id,
            )
        if not result.applied:
            return [f"Payment {command.reference} already processed. Balance: {result.balance}"]
        return [f"Credited {tokens} tokens. Balance: {result.balance}"]

    def history(self, command: TokensHistoryCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _database(settings) as database:
            activities = LedgerRepository(database, context=_context(settings)).list_activities(
                limit=command.limit,
            )
        lines = [f"Activities: {len(activities)}"]
        for activity in activities:
            lines.append(
                f"  {activity.created_at.isoformat()} {activity.activity_type} "
                f"tokens={activity.tokens_used} balance={activity.token_balance_after} "
                f"resource={activity.resource_id or '-'}",
            )
        return lines

    def create_task(self, command: TaskCreateCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        task_type = TaskType(command.task_type)
        with _database(settings) as database:
            admission = AdmissionService(database, context=_context(settings))
            if task_type == TaskType.ANALYZE_RESUME:
                if command.job_path is None or command.resume_path is None:
                    raise ValueError("analyze_resume requires --job-file and --resume-file.")
                task = admission.analyze(
                    job=_read_json_object(command.job_path),
                    resume=_read_json_object(command.resume_path),
                )
            elif command.analysis_id is None:
                raise ValueError(f"{task_type.value} requires --analysis-id.")
            elif task_type == TaskType.OPTIMIZE_RESUME:
                task = admission.optimize(command.analysis_id)
            else:
                task = admission.add_skill(command.analysis_id, list(command.skills))
            balance = admission.ledger.get_balance()

        return [
            f"Task created: task_id={task.task_id} type={task.task_type} "
            f"status={task.status.value}",
            f"Balance: {balance}",
        ]

    def list_tasks(self, command: TaskListCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        status = TrackedTaskStatus(command.status) if command.status else None
        with _database(settings) as database:
            tasks = TaskRepository(database, context=_context(settings)).list_tasks(
                status=status,
                limit=command.limit,
            )
        lines = [f"Tasks: {len(tasks)}"]
        for task in tasks:
            lines.append(
                f"  {task.task_id} type={task.task_type} status={task.status.value} "
                f"progress={task.progress} stage={task.stage!r}",
            )
        return lines

    def inspect_task(self, command: TaskMutateCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _database(settings) as database:
            details = TaskRepository(database, context=_context(settings)).get_task_details(
                command.task_id,
            )
        if details is None:
            return [f"Task not found: {command.task_id}"]

        task = details.task
        lines = [
            f"Task: {task.task_id}",
            f"Type: {task.task_type}",
            f"Status: {task.status.value}",
            f"Progress: {task.progress} ({task.stage})",
            f"Executor: {task.executor_id or '-'}",
            f"Result: {task.result_id or '-'}",
            f"Error: {task.error or '-'}",
            f"Events: {len(details.events)}",
        ]
        for event in details.events:
            lines.append(
                f"  {event.created_at.isoformat()} {event.event_type} "
                f"{event.status_from.value if event.status_from else '-'} -> "
                f"{event.status_to.value if event.status_to else '-'}",
            )
        return lines

    def cancel_task(self, command: TaskMutateCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _database(settings) as database:
            TaskRepository(database, context=_context(settings)).cancel_task(command.task_id)
        return [f"Task cancelled: {command.task_id}"]

    def delete_task(self, command: TaskMutateCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _database(settings) as database:
            deleted = TaskRepository(database, context=_context(settings)).delete_task(
                command.task_id,
            )
        if not deleted:
            return [f"Task not found: {command.task_id}"]
        return [f"Task deleted: {command.task_id}"]

    def reap(self, command: DbCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _database(settings) as database:
            reaped = _reaper(database, settings).run()
        return [f"Stale tasks failed: {len(reaped)}", *(f"  {task_id}" for task_id in reaped)]

    def create_application(self, command: ApplicationCreateCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _database(settings) as database:
            application = RecordsRepository(
                database,
                context=_context(settings),
            ).create_application(
                ApplicationCreate(
                    company_name=command.company_name,
                    job_title=command.job_title,
                    job_description=command.job_description_path.read_text(encoding="utf-8"),
                    analysis_id=command.analysis_id,
                ),
            )
        return [f"Application created: {application.application_id}"]

    def show_application(self, command: ApplicationCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _database(settings) as database:
            application = RecordsRepository(
                database,
                context=_context(settings),
            ).get_application(command.application_id)
        if application is None:
            return [f"Application not found: {command.application_id}"]
        return [
            f"Application: {application.application_id}",
            f"Company: {application.company_name}",
            f"Title: {application.job_title}",
            f"Prep guide: {application.prep_status.value} {application.prep_progress}% "
            f"({application.prep_current_step or '-'})",
            f"Prep error: {application.prep_error or '-'}",
            f"Sections: {', '.join(sorted(application.prep_sections)) or '-'}",
            f"Cover letter: {application.cover_letter_status.value}",
            f"Cover letter error: {application.cover_letter_error or '-'}",
        ]

    def request_prep_guide(self, command: ApplicationCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _database(settings) as database:
            admission = AdmissionService(database, context=_context(settings))
            job = admission.prep_guide(command.application_id)
            balance = admission.ledger.get_balance()
        return [f"Prep guide queued: job_id={job.job_id}", f"Balance: {balance}"]

    def request_cover_letter(self, command: ApplicationCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _database(settings) as database:
            admission = AdmissionService(database, context=_context(settings))
            job = admission.cover_letter(command.application_id)
            balance = admission.ledger.get_balance()
        return [f"Cover letter queued: job_id={job.job_id}", f"Balance: {balance}"]

    def cancel_prep_guide(self, command: ApplicationCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _database(settings) as database:
            cancelled = RecordsRepository(
                database,
                context=_context(settings),
            ).cancel_prep_guide(command.application_id)
        if not cancelled:
            return [f"No prep guide in progress for {command.application_id}"]
        return [f"Prep guide cancelled: {command.application_id}"]

    def run_worker(self, command: WorkerCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        settings.validate_for_worker()
        settings.validate_for_ai()
        invoker = AiInvoker.from_settings(settings.ai)
        with _database(settings) as database:
            reaper = _reaper(database, settings) if settings.worker.reap_on_start else None
            picker = QueuePicker(
                database,
                TaskRunner(database, invoker, default_executors(), notifier=_notifier(settings)),
                context=_context(settings),
                executor_id=settings.worker.executor_id,
                max_workers=settings.worker.max_workers,
                poll_interval_seconds=settings.worker.poll_interval_seconds,
                reaper=reaper,
            )
            try:
                if command.once:
                    reaped = len(reaper.run()) if reaper is not None else 0
                    summary = picker.run_once()
                    summary.reaped = reaped
                else:
                    summary = picker.run_loop(
                        max_tasks=command.max_tasks,
                        max_idle_polls=command.max_idle_polls,
                    )
            finally:
                picker.shutdown()
                invoker.close()

        return [
            "Picker summary: "
            f"processed={summary.processed} succeeded={summary.succeeded} "
            f"failed={summary.failed} cancelled={summary.cancelled} "
            f"skipped={summary.skipped} reaped={summary.reaped} idle_polls={summary.idle_polls}",
        ]

    def run_pending_jobs(self, command: JobsRunPendingCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        settings.validate_for_worker()
        settings.validate_for_ai()
        invoker = AiInvoker.from_settings(settings.ai)
        context = _context(settings)
        with _database(settings) as database:
            processor = TaskProcessor(
                database,
                invoker,
                TaskRunner(database, invoker, default_executors(), notifier=_notifier(settings)),
                notifier=_notifier(settings),
                cancel_poll_seconds=settings.worker.cancel_poll_seconds,
                max_workers=settings.worker.max_workers,
            )
            try:
                if command.use_prefect:
                    outcomes = pending_jobs_flow(
                        processor=processor,
                        context=context,
                        limit=command.limit,
                    )
                else:
                    outcomes = processor.run_pending(context, limit=command.limit)
            finally:
                processor.shutdown()
                invoker.close()

        lines = [f"Pending jobs processed: {len(outcomes)}"]
        for job_id, status in outcomes.items():
            lines.append(f"  {job_id} {status.value if status else 'already-claimed'}")
        return lines

    def list_jobs(self, command: JobsListCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        status = JobStatus(command.status) if command.status else None
        with _database(settings) as database:
            jobs = PipelineJobRepository(database, context=_context(settings)).list_jobs(
                status=status,
                limit=command.limit,
            )
        lines = [f"Jobs: {len(jobs)}"]
        for job in jobs:
            lines.append(
                f"  {job.job_id} type={job.job_type.value} status={job.status.value} "
                f"target={job.target_id or '-'} error={job.error or '-'}",
            )
        return lines

    def calculate_score(self, analysis_path: Path) -> list[str]:
        analysis = MatchAnalysis.from_dict(_read_json_object(analysis_path))
        return [f"ATS score: {calculate_score(analysis)}"]

    def skill_gain(
        self,
        *,
        current: int,
        baseline: int,
        baseline_total: int,
        added: int,
    ) -> list[str]:
        new_score = apply_skill_addition(current, baseline, baseline_total, added)
        return [f"Score: {current} -> {new_score}"]


def _context(settings: Settings) -> UserContext:
    return UserContext(
        user_id=settings.user_context.user_id,
        user_name=settings.user_context.user_name,
    )


def _notifier(settings: Settings) -> Notifier | None:
    return LoggingNotifier() if settings.worker.notifications_enabled else None


def _reaper(database: Database, settings: Settings) -> StaleTaskReaper:
    return StaleTaskReaper(
        TaskRepository(database, context=_context(settings)),
        stale_after=timedelta(seconds=settings.worker.stale_after_seconds),
    )


def _read_json_object(path: Path) -> dict[str, Any]:
    raw = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError(f"Expected a JSON object in {path}")
    return raw


@contextmanager
def _database(settings: Settings) -> Iterator[Database]:
    database = Database(settings.db_path, busy_timeout_ms=settings.sqlite_busy_timeout_ms)
    database.init_schema()
    database.ensure_user(_context(settings), initial_balance=settings.ledger.initial_balance)
    try:
        yield database
    finally:
        database.close()
