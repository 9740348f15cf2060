"""Prefect flow for the pending-job catch-up sweep.

Each pending pipeline job runs as a Prefect task. Retries are off: a job is
claimed exactly once, and a failed job is retried by a new user request.
"""

from __future__ import annotations

import logging

from prefect import flow, task

from resume_forge.pipeline.models import JobStatus, PipelineJobView
from resume_forge.pipeline.processor import TaskProcessor
from resume_forge.pipeline.repository import PipelineJobRepository
from resume_forge.storage.database import UserContext

logger = logging.getLogger(__name__)

_JOB_RETRIES = 0


@task(retries=_JOB_RETRIES)
def process_job(*, processor: TaskProcessor, job: PipelineJobView) -> JobStatus | None:
    """Claim and run one pipeline job."""

    return processor.on_job_created(job)


@flow(name="pending_jobs_flow")
def pending_jobs_flow(
    *,
    processor: TaskProcessor,
    context: UserContext,
    limit: int = 50,
) -> dict[str, JobStatus | None]:
    """Run every pending job of ``context``'s user, oldest first."""

    jobs = PipelineJobRepository(processor.database, context=context)
    pending = jobs.list_pending(limit=limit)
    logger.info("Processing %d pending jobs for %s", len(pending), context.user_id)
    return {job.job_id: process_job(processor=processor, job=job) for job in pending}
