"""CLI entrypoint for resume-forge."""

import logging
from collections.abc import Callable
from pathlib import Path

import rich_click as click

from resume_forge import __version__
from resume_forge.controllers import (
    ApplicationCommand,
    ApplicationCreateCommand,
    DbCommand,
    JobsListCommand,
    JobsRunPendingCommand,
    ResumeForgeCliController,
    TaskCreateCommand,
    TaskListCommand,
    TaskMutateCommand,
    TokensCreditCommand,
    TokensHistoryCommand,
    WorkerCommand,
)
from resume_forge.ledger.payments import TOKEN_PACKAGES

click.rich_click.USE_MARKDOWN = True
CONTROLLER = ResumeForgeCliController()

_DB_PATH_OPTION = click.option(
    "--db-path",
    type=click.Path(path_type=Path),
    default=None,
    help="SQLite DB path.",
)


@click.group()
@click.version_option(version=__version__, prog_name="resume-forge")
@click.option(
    "--log-level",
    envvar="RESUME_FORGE_LOG_LEVEL",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Root logger level.",
)
def resume_forge(log_level: str) -> None:
    """Resume forge task orchestration CLI."""

    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@resume_forge.group()
def db() -> None:
    """Database commands."""


@db.command("init")
@_DB_PATH_OPTION
def db_init(db_path: Path | None) -> None:
    """Apply migrations and create the configured user account."""

    _emit(lambda: CONTROLLER.init_db(DbCommand(db_path=db_path)))


@resume_forge.group()
def tokens() -> None:
    """Token ledger commands."""


@tokens.command("balance")
@_DB_PATH_OPTION
def tokens_balance(db_path: Path | None) -> None:
    """Show the current token balance."""

    _emit(lambda: CONTROLLER.balance(DbCommand(db_path=db_path)))


@tokens.command("credit")
@_DB_PATH_OPTION
@click.option("--reference", required=True, help="External payment reference (idempotency key).")
@click.option("--tokens", "amount", type=click.IntRange(min=1), default=None, help="Tokens to add.")
@click.option(
    "--package",
    "package_id",
    type=click.Choice(sorted(TOKEN_PACKAGES)),
    default=None,
    help="Token package; sets the amount when --tokens is omitted.",
)
def tokens_credit(
    db_path: Path | None,
    reference: str,
    amount: int | None,
    package_id: str | None,
) -> None:
    """Credit purchased tokens once per payment reference."""

    _emit(
        lambda: CONTROLLER.credit(
            TokensCreditCommand(
                db_path=db_path,
                reference=reference,
                tokens=amount,
                package_id=package_id,
            ),
        ),
    )


@tokens.command("history")
@_DB_PATH_OPTION
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=500),
    default=20,
    show_default=True,
    help="Max activity rows to print.",
)
def tokens_history(db_path: Path | None, limit: int) -> None:
    """List ledger activity, newest first."""

    _emit(lambda: CONTROLLER.history(TokensHistoryCommand(db_path=db_path, limit=limit)))


@resume_forge.group()
def tasks() -> None:
    """Tracked task commands."""


@tasks.command("create")
@_DB_PATH_OPTION
@click.option(
    "--task-type",
    type=click.Choice(["analyze_resume", "optimize_resume", "add_skill"]),
    required=True,
    help="Task type to admit.",
)
@click.option(
    "--job-file",
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    default=None,
    help="Job JSON (analyze_resume).",
)
@click.option(
    "--resume-file",
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    default=None,
    help="Resume JSON (analyze_resume).",
)
@click.option("--analysis-id", default=None, help="Analysis id (optimize_resume, add_skill).")
@click.option("--skill", "skills", multiple=True, help="Skill to add. Can be repeated.")
def tasks_create(  # noqa: PLR0913
    db_path: Path | None,
    task_type: str,
    job_file: Path | None,
    resume_file: Path | None,
    analysis_id: str | None,
    skills: tuple[str, ...],
) -> None:
    """Debit the activity cost and queue a tracked task."""

    _emit(
        lambda: CONTROLLER.create_task(
            TaskCreateCommand(
                db_path=db_path,
                task_type=task_type,
                job_path=job_file,
                resume_path=resume_file,
                analysis_id=analysis_id,
                skills=skills,
            ),
        ),
    )


@tasks.command("list")
@_DB_PATH_OPTION
@click.option(
    "--status",
    type=click.Choice(["queued", "processing", "completed", "failed", "cancelled"]),
    default=None,
    help="Optional status filter.",
)
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=500),
    default=50,
    show_default=True,
    help="Max tasks to print.",
)
def tasks_list(db_path: Path | None, status: str | None, limit: int) -> None:
    """List tracked tasks, newest first."""

    _emit(
        lambda: CONTROLLER.list_tasks(TaskListCommand(db_path=db_path, status=status, limit=limit)),
    )


@tasks.command("inspect")
@_DB_PATH_OPTION
@click.option("--task-id", required=True, help="Task id.")
def tasks_inspect(db_path: Path | None, task_id: str) -> None:
    """Inspect one task with event history."""

    _emit(lambda: CONTROLLER.inspect_task(TaskMutateCommand(db_path=db_path, task_id=task_id)))


@tasks.command("cancel")
@_DB_PATH_OPTION
@click.option("--task-id", required=True, help="Task id.")
def tasks_cancel(db_path: Path | None, task_id: str) -> None:
    """Cancel a queued or processing task."""

    _emit(lambda: CONTROLLER.cancel_task(TaskMutateCommand(db_path=db_path, task_id=task_id)))


@tasks.command("delete")
@_DB_PATH_OPTION
@click.option("--task-id", required=True, help="Task id.")
def tasks_delete(db_path: Path | None, task_id: str) -> None:
    """Delete a task; an in-flight executor stops at its next checkpoint."""

    _emit(lambda: CONTROLLER.delete_task(TaskMutateCommand(db_path=db_path, task_id=task_id)))


@tasks.command("reap")
@_DB_PATH_OPTION
def tasks_reap(db_path: Path | None) -> None:
    """Fail active tasks older than the staleness window."""

    _emit(lambda: CONTROLLER.reap(DbCommand(db_path=db_path)))


@resume_forge.group()
def applications() -> None:
    """Job application commands (prep guide, cover letter)."""


@applications.command("create")
@_DB_PATH_OPTION
@click.option("--company", "company_name", required=True, help="Company name.")
@click.option("--title", "job_title", required=True, help="Job title.")
@click.option(
    "--description-file",
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    required=True,
    help="Plain-text job description.",
)
@click.option("--analysis-id", default=None, help="Analysis whose resume feeds generation.")
def applications_create(
    db_path: Path | None,
    company_name: str,
    job_title: str,
    description_file: Path,
    analysis_id: str | None,
) -> None:
    """Create an application record."""

    _emit(
        lambda: CONTROLLER.create_application(
            ApplicationCreateCommand(
                db_path=db_path,
                company_name=company_name,
                job_title=job_title,
                job_description_path=description_file,
                analysis_id=analysis_id,
            ),
        ),
    )


@applications.command("show")
@_DB_PATH_OPTION
@click.option("--application-id", required=True, help="Application id.")
def applications_show(db_path: Path | None, application_id: str) -> None:
    """Show prep guide and cover letter state."""

    _emit(
        lambda: CONTROLLER.show_application(
            ApplicationCommand(db_path=db_path, application_id=application_id),
        ),
    )


@applications.command("prep-guide")
@_DB_PATH_OPTION
@click.option("--application-id", required=True, help="Application id.")
def applications_prep_guide(db_path: Path | None, application_id: str) -> None:
    """Debit and queue interview prep guide generation."""

    _emit(
        lambda: CONTROLLER.request_prep_guide(
            ApplicationCommand(db_path=db_path, application_id=application_id),
        ),
    )


@applications.command("cover-letter")
@_DB_PATH_OPTION
@click.option("--application-id", required=True, help="Application id.")
def applications_cover_letter(db_path: Path | None, application_id: str) -> None:
    """Debit and queue cover letter generation."""

    _emit(
        lambda: CONTROLLER.request_cover_letter(
            ApplicationCommand(db_path=db_path, application_id=application_id),
        ),
    )


@applications.command("cancel-prep")
@_DB_PATH_OPTION
@click.option("--application-id", required=True, help="Application id.")
def applications_cancel_prep(db_path: Path | None, application_id: str) -> None:
    """Stop prep guide generation; sections written so far are kept."""

    _emit(
        lambda: CONTROLLER.cancel_prep_guide(
            ApplicationCommand(db_path=db_path, application_id=application_id),
        ),
    )


@resume_forge.group()
def worker() -> None:
    """Client-side queue picker."""


@worker.command("run")
@_DB_PATH_OPTION
@click.option(
    "--once/--loop",
    default=True,
    show_default=True,
    help="Process one snapshot or loop until idle.",
)
@click.option(
    "--max-tasks",
    type=click.IntRange(min=1),
    default=None,
    help="Optional cap for processed tasks in loop mode.",
)
@click.option(
    "--max-idle-polls",
    type=click.IntRange(min=1),
    default=1,
    show_default=True,
    help="Stop the loop after this many consecutive empty polls.",
)
def worker_run(
    db_path: Path | None,
    once: bool,
    max_tasks: int | None,
    max_idle_polls: int,
) -> None:
    """Claim and execute queued tracked tasks."""

    _emit(
        lambda: CONTROLLER.run_worker(
            WorkerCommand(
                db_path=db_path,
                once=once,
                max_tasks=max_tasks,
                max_idle_polls=max_idle_polls,
            ),
        ),
    )


@resume_forge.group()
def jobs() -> None:
    """Server-side pipeline job commands."""


@jobs.command("run-pending")
@_DB_PATH_OPTION
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=500),
    default=50,
    show_default=True,
    help="Max pending jobs to process.",
)
@click.option(
    "--prefect/--no-prefect",
    "use_prefect",
    default=False,
    show_default=True,
    help="Run the sweep as a Prefect flow.",
)
def jobs_run_pending(db_path: Path | None, limit: int, use_prefect: bool) -> None:
    """Process pending pipeline jobs, oldest first."""

    _emit(
        lambda: CONTROLLER.run_pending_jobs(
            JobsRunPendingCommand(db_path=db_path, limit=limit, use_prefect=use_prefect),
        ),
    )


@jobs.command("list")
@_DB_PATH_OPTION
@click.option(
    "--status",
    type=click.Choice(["pending", "processing", "completed", "failed", "cancelled", "skipped"]),
    default=None,
    help="Optional status filter.",
)
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=500),
    default=50,
    show_default=True,
    help="Max jobs to print.",
)
def jobs_list(db_path: Path | None, status: str | None, limit: int) -> None:
    """List pipeline jobs, newest first."""

    _emit(
        lambda: CONTROLLER.list_jobs(JobsListCommand(db_path=db_path, status=status, limit=limit)),
    )


@resume_forge.group()
def score() -> None:
    """ATS score calculations."""


@score.command("calculate")
@click.option(
    "--analysis-file",
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    required=True,
    help="Match analysis JSON.",
)
def score_calculate(analysis_file: Path) -> None:
    """Compute the ATS score of a match analysis."""

    _emit(lambda: CONTROLLER.calculate_score(analysis_file))


@score.command("skill-gain")
@click.option("--current", type=click.IntRange(min=0, max=100), required=True)
@click.option("--baseline", type=click.IntRange(min=0, max=100), required=True)
@click.option("--baseline-total", type=click.IntRange(min=0), required=True)
@click.option("--added", type=click.IntRange(min=0), required=True)
def score_skill_gain(current: int, baseline: int, baseline_total: int, added: int) -> None:
    """Project the calibrated score after adding skills."""

    _emit(
        lambda: CONTROLLER.skill_gain(
            current=current,
            baseline=baseline,
            baseline_total=baseline_total,
            added=added,
        ),
    )


def _emit(action: Callable[[], list[str]]) -> None:
    try:
        lines = action()
    except (RuntimeError, ValueError) as exc:
        raise click.ClickException(str(exc)) from exc
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    resume_forge()
