"""Claim-then-execute routine shared by the queue picker and the pipeline processor."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from resume_forge.ai.invoker import AiInvoker
from resume_forge.errors import (
    CancelledByUser,
    ProviderFailure,
    ResumeForgeError,
    TaskGone,
    describe_failure,
)
from resume_forge.notifications import Notifier, build_notification, notify_completion
from resume_forge.pipeline.cancellation import CancellationToken
from resume_forge.records.repository import RecordsRepository
from resume_forge.storage.database import Database, UserContext
from resume_forge.tasks.models import TaskClaim, TrackedTaskStatus, TrackedTaskView
from resume_forge.tasks.repository import TaskRepository

logger = logging.getLogger(__name__)


class TaskOutcome(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"


@dataclass(slots=True)
class TaskResult:
    task_id: str
    outcome: TaskOutcome
    error: str | None = None
    result_id: str | None = None


@dataclass(slots=True)
class ExecutionContext:
    """Everything an executor needs; ``checkpoint`` is its only way to report progress."""

    task: TrackedTaskView
    claim: TaskClaim
    tasks: TaskRepository
    records: RecordsRepository
    invoker: AiInvoker
    token: CancellationToken = field(default_factory=CancellationToken)

    def checkpoint(self, progress: int, stage: str) -> None:
        """Honor cancellation, then record progress.

        Raises :class:`CancelledByUser` on a local cancel and :class:`TaskGone`
        when the guarded write finds the task deleted, finished, or reclaimed.
        """

        self.token.raise_if_cancelled()
        if not self.tasks.update_progress(self.claim, progress=progress, stage=stage):
            raise TaskGone(self.task.task_id)


Executor = Callable[[ExecutionContext], str | None]


class TaskRunner:
    def __init__(
        self,
        database: Database,
        invoker: AiInvoker,
        executors: dict[str, Executor],
        *,
        notifier: Notifier | None = None,
    ) -> None:
        self.database = database
        self.invoker = invoker
        self.executors = executors
        self.notifier = notifier

    def supports(self, task_type: str) -> bool:
        return task_type in self.executors

    def execute(
        self,
        task: TrackedTaskView,
        *,
        executor_id: str,
        token: CancellationToken | None = None,
    ) -> TaskResult:
        """Claim ``task`` and run its executor to a terminal write.

        A lost claim, or a local cancel that arrived before the claim, is a
        silent skip. Executor errors become a ``failed`` write; they are not
        re-raised.
        """

        context = UserContext(user_id=task.user_id)
        tasks = TaskRepository(self.database, context=context)
        token = token or CancellationToken()

        executor = self.executors.get(task.task_type)
        if executor is None:
            message = f"No executor registered for task type {task.task_type}"
            tasks.fail_unclaimed(task.task_id, error=message)
            return TaskResult(task_id=task.task_id, outcome=TaskOutcome.FAILED, error=message)

        if token.requested:
            logger.info("Task %s was cancelled locally before it started", task.task_id)
            return TaskResult(task_id=task.task_id, outcome=TaskOutcome.SKIPPED)

        claim = tasks.claim_task(task.task_id, executor_id=executor_id)
        if claim is None:
            logger.info("Task %s already claimed elsewhere; skipping", task.task_id)
            return TaskResult(task_id=task.task_id, outcome=TaskOutcome.SKIPPED)

        ctx = ExecutionContext(
            task=task,
            claim=claim,
            tasks=tasks,
            records=RecordsRepository(self.database, context=context),
            invoker=self.invoker,
            token=token,
        )
        try:
            result_id = executor(ctx)
            token.raise_if_cancelled()
        except CancelledByUser as exc:
            tasks.cancel_claimed(claim, reason=str(exc))
            logger.info("Task %s cancelled: %s", task.task_id, exc)
            return TaskResult(task_id=task.task_id, outcome=TaskOutcome.CANCELLED)
        except TaskGone:
            return self._lost(tasks, task.task_id)
        except Exception as exc:  # noqa: BLE001
            return self._fail(tasks, claim, exc)

        if not tasks.complete_task(claim, result_id=result_id):
            return self._lost(tasks, task.task_id)

        logger.info("Task %s completed (result=%s)", task.task_id, result_id)
        notify_completion(
            self.notifier,
            build_notification(
                user_id=task.user_id,
                kind=task.task_type,
                subject=_subject_label(task.task_type),
                resource_id=result_id,
            ),
        )
        return TaskResult(
            task_id=task.task_id,
            outcome=TaskOutcome.COMPLETED,
            result_id=result_id,
        )

    def _fail(self, tasks: TaskRepository, claim: TaskClaim, error: Exception) -> TaskResult:
        message = describe_failure(error)
        details: dict[str, object] = {"error_type": type(error).__name__}
        if isinstance(error, ProviderFailure) and error.classification is not None:
            details.update(error.classification.to_event_details())
        if isinstance(error, ResumeForgeError):
            logger.warning("Task %s failed: %s", claim.task_id, error)
        else:
            logger.exception("Task %s failed unexpectedly", claim.task_id)
        if not tasks.fail_task(claim, error=message, details=details):
            return self._lost(tasks, claim.task_id)
        return TaskResult(task_id=claim.task_id, outcome=TaskOutcome.FAILED, error=message)

    def _lost(self, tasks: TaskRepository, task_id: str) -> TaskResult:
        """The guarded write missed: the task was deleted, cancelled, or reclaimed."""

        current = tasks.get_task(task_id)
        if current is None or current.status == TrackedTaskStatus.CANCELLED:
            logger.info("Task %s was cancelled or deleted; stopping quietly", task_id)
            return TaskResult(task_id=task_id, outcome=TaskOutcome.CANCELLED)
        logger.info("Task %s is now %s; dropping this run", task_id, current.status.value)
        return TaskResult(task_id=task_id, outcome=TaskOutcome.SKIPPED)


def _subject_label(task_type: str) -> str:
    return {
        "analyze_resume": "resume analysis",
        "optimize_resume": "optimized resume",
        "add_skill": "updated resume",
    }.get(task_type, "result")
