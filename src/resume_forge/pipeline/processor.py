"""Server-side processor triggered by pipeline-job creation."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor

from resume_forge.ai.invoker import AiInvoker
from resume_forge.errors import CancelledByUser, ResumeForgeError, describe_failure
from resume_forge.notifications import Notifier, build_notification, notify_completion
from resume_forge.pipeline.cancellation import CancellationToken
from resume_forge.pipeline.cover_letter import CoverLetterGenerator
from resume_forge.pipeline.models import JOB_CREATED_EVENT, JobStatus, JobType, PipelineJobView
from resume_forge.pipeline.prep_guide import PrepGuidePipeline
from resume_forge.pipeline.repository import PipelineJobRepository
from resume_forge.storage.database import Database, UserContext
from resume_forge.tasks.repository import TaskRepository
from resume_forge.tasks.runner import TaskOutcome, TaskRunner

logger = logging.getLogger(__name__)

DEFAULT_EXECUTOR_ID = "pipeline-processor"

_OUTCOME_STATUS: dict[TaskOutcome, JobStatus] = {
    TaskOutcome.COMPLETED: JobStatus.COMPLETED,
    TaskOutcome.FAILED: JobStatus.FAILED,
    TaskOutcome.CANCELLED: JobStatus.CANCELLED,
    TaskOutcome.SKIPPED: JobStatus.SKIPPED,
}


class TaskProcessor:
    """Claims each new pipeline job once and dispatches it by type.

    Duplicate deliveries of the same creation event are ignored by the
    ``pending -> processing`` claim. Jobs paired with a tracked task go
    through :class:`TaskRunner`, so the tracked-task claim decides between
    this processor and a client picker.
    """

    def __init__(  # noqa: PLR0913
        self,
        database: Database,
        invoker: AiInvoker,
        runner: TaskRunner,
        *,
        notifier: Notifier | None = None,
        executor_id: str = DEFAULT_EXECUTOR_ID,
        cancel_poll_seconds: float = 0.0,
        max_workers: int = 2,
    ) -> None:
        self.database = database
        self.runner = runner
        self.notifier = notifier
        self.executor_id = executor_id
        self.prep_guide = PrepGuidePipeline(
            database,
            invoker,
            cancel_poll_seconds=cancel_poll_seconds,
        )
        self.cover_letter = CoverLetterGenerator(database, invoker)
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="processor")
        self._tokens: dict[str, CancellationToken] = {}
        self._lock = threading.Lock()
        self._detach: Callable[[], None] | None = None

    def attach(self) -> None:
        """Subscribe to job creation; each new job is processed on the pool."""

        if self._detach is None:
            self._detach = self.database.add_listener(JOB_CREATED_EVENT, self._on_event)

    def detach(self) -> None:
        if self._detach is not None:
            self._detach()
            self._detach = None

    def submit(self, job: PipelineJobView) -> Future[JobStatus | None]:
        return self._pool.submit(self.on_job_created, job)

    def on_job_created(self, job: PipelineJobView) -> JobStatus | None:
        """Process one job; ``None`` when it was already claimed elsewhere."""

        context = UserContext(user_id=job.user_id)
        jobs = PipelineJobRepository(self.database, context=context)
        if not jobs.claim_job(job.job_id):
            logger.info("Job %s already claimed; ignoring duplicate delivery", job.job_id)
            return None

        with self._lock:
            token = self._tokens.setdefault(job.job_id, CancellationToken())
        try:
            status = self._dispatch(job, jobs, context, token)
        except CancelledByUser as exc:
            jobs.cancel_job(job.job_id, reason=str(exc))
            logger.info("Job %s cancelled", job.job_id)
            return JobStatus.CANCELLED
        except Exception as exc:  # noqa: BLE001
            message = describe_failure(exc)
            if isinstance(exc, ResumeForgeError):
                logger.warning("Job %s failed: %s", job.job_id, message)
            else:
                logger.exception("Job %s failed unexpectedly", job.job_id)
            jobs.fail_job(job.job_id, error=message)
            return JobStatus.FAILED
        finally:
            with self._lock:
                self._tokens.pop(job.job_id, None)
        return status

    def cancel_job(self, job_id: str) -> bool:
        """Signal an in-flight job to stop at its next checkpoint."""

        with self._lock:
            token = self._tokens.get(job_id)
        if token is None:
            return False
        token.cancel()
        return True

    def run_pending(self, context: UserContext, *, limit: int = 50) -> dict[str, JobStatus | None]:
        """Catch-up sweep: process pending jobs synchronously, oldest first."""

        jobs = PipelineJobRepository(self.database, context=context)
        return {job.job_id: self.on_job_created(job) for job in jobs.list_pending(limit=limit)}

    def shutdown(self, *, wait: bool = True) -> None:
        self.detach()
        self._pool.shutdown(wait=wait)

    def _on_event(self, payload: object) -> None:
        if isinstance(payload, PipelineJobView):
            self.submit(payload)

    def _dispatch(
        self,
        job: PipelineJobView,
        jobs: PipelineJobRepository,
        context: UserContext,
        token: CancellationToken,
    ) -> JobStatus:
        if job.job_type in {JobType.PREP_GUIDE, JobType.COVER_LETTER}:
            if not job.target_id:
                raise ValueError(f"Job {job.job_id} has no target application.")
            if job.job_type == JobType.PREP_GUIDE:
                self.prep_guide.run(
                    job.target_id,
                    context=context,
                    payload=job.payload,
                    token=token,
                )
                subject = "interview prep guide"
            else:
                self.cover_letter.run(
                    job.target_id,
                    context=context,
                    payload=job.payload,
                    token=token,
                )
                subject = "cover letter"
            jobs.complete_job(job.job_id)
            notify_completion(
                self.notifier,
                build_notification(
                    user_id=job.user_id,
                    kind=job.job_type.value,
                    subject=subject,
                    resource_id=job.target_id,
                ),
            )
            return JobStatus.COMPLETED

        return self._run_tracked(job, jobs, context, token)

    def _run_tracked(
        self,
        job: PipelineJobView,
        jobs: PipelineJobRepository,
        context: UserContext,
        token: CancellationToken,
    ) -> JobStatus:
        task = (
            TaskRepository(self.database, context=context).get_task(job.tracked_task_id)
            if job.tracked_task_id
            else None
        )
        if task is None:
            jobs.skip_job(job.job_id, reason="Tracked task no longer exists")
            return JobStatus.SKIPPED

        result = self.runner.execute(task, executor_id=self.executor_id, token=token)
        status = _OUTCOME_STATUS[result.outcome]
        if status == JobStatus.COMPLETED:
            jobs.complete_job(job.job_id)
        elif status == JobStatus.FAILED:
            jobs.fail_job(job.job_id, error=result.error or "Task failed")
        elif status == JobStatus.CANCELLED:
            jobs.cancel_job(job.job_id)
        else:
            jobs.skip_job(job.job_id, reason="Tracked task handled by another executor")
        return status
