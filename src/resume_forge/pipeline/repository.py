"""Pipeline-job store; job creation is the trigger for server-side processing."""

from __future__ import annotations

import logging
from uuid import uuid4

from sqlalchemy import update as sa_update
from sqlmodel import Session, col, select

from resume_forge.pipeline.models import (
    JOB_CREATED_EVENT,
    JobStatus,
    JobType,
    PipelineJobCreate,
    PipelineJobView,
)
from resume_forge.storage.common import (
    dump_json,
    load_json_dict,
    optional_utc,
    to_db_datetime,
    to_utc_aware_datetime,
    utc_now,
)
from resume_forge.storage.database import Database, UserContext
from resume_forge.storage.sqlmodel_models import PipelineJob

logger = logging.getLogger(__name__)


class PipelineJobRepository:
    def __init__(self, database: Database, *, context: UserContext) -> None:
        self.database = database
        self.engine = database.engine
        self.user_id = context.user_id

    def create_job(self, payload: PipelineJobCreate) -> PipelineJobView:
        """Insert a pending job, then fire the creation event with the full job view.

        Listeners run after the commit, so a listener that immediately claims
        the job always finds it.
        """

        now = utc_now()
        with Session(self.engine) as session:
            row = PipelineJob(
                job_id=payload.job_id or str(uuid4()),
                user_id=self.user_id,
                job_type=JobType(payload.job_type).value,
                status=JobStatus.PENDING.value,
                payload_json=dump_json(payload.payload),
                tracked_task_id=payload.tracked_task_id,
                target_id=payload.target_id,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            view = _to_job_view(row)

        logger.info("Created %s job %s", view.job_type.value, view.job_id)
        self.database.emit(JOB_CREATED_EVENT, view)
        return view

    def get_job(self, job_id: str) -> PipelineJobView | None:
        with Session(self.engine) as session:
            row = session.exec(
                select(PipelineJob).where(
                    PipelineJob.job_id == job_id,
                    PipelineJob.user_id == self.user_id,
                ),
            ).one_or_none()
        return _to_job_view(row) if row is not None else None

    def claim_job(self, job_id: str) -> bool:
        """``pending -> processing``; ``False`` for a duplicate delivery."""

        now = utc_now()
        return self._transition(
            job_id,
            from_statuses=(JobStatus.PENDING,),
            values={
                "status": JobStatus.PROCESSING.value,
                "started_at": to_db_datetime(now),
                "updated_at": to_db_datetime(now),
            },
        )

    def complete_job(self, job_id: str) -> bool:
        return self._finish(job_id, JobStatus.COMPLETED, error=None)

    def fail_job(self, job_id: str, *, error: str) -> bool:
        return self._finish(job_id, JobStatus.FAILED, error=error)

    def skip_job(self, job_id: str, *, reason: str) -> bool:
        return self._finish(job_id, JobStatus.SKIPPED, error=reason)

    def cancel_job(self, job_id: str, *, reason: str = "Task was cancelled by user") -> bool:
        now = utc_now()
        return self._transition(
            job_id,
            from_statuses=(JobStatus.PENDING, JobStatus.PROCESSING),
            values={
                "status": JobStatus.CANCELLED.value,
                "error": reason,
                "completed_at": to_db_datetime(now),
                "updated_at": to_db_datetime(now),
            },
        )

    def list_pending(self, *, limit: int = 50) -> list[PipelineJobView]:
        """Oldest pending jobs first."""

        return self.list_jobs(status=JobStatus.PENDING, limit=limit, oldest_first=True)

    def list_jobs(
        self,
        *,
        status: JobStatus | None = None,
        limit: int = 50,
        oldest_first: bool = False,
    ) -> list[PipelineJobView]:
        order = col(PipelineJob.created_at)
        with Session(self.engine) as session:
            statement = select(PipelineJob).where(PipelineJob.user_id == self.user_id)
            if status is not None:
                statement = statement.where(PipelineJob.status == status.value)
            rows = session.exec(
                statement.order_by(order.asc() if oldest_first else order.desc()).limit(limit),
            ).all()
        return [_to_job_view(row) for row in rows]

    def _finish(self, job_id: str, status: JobStatus, *, error: str | None) -> bool:
        now = utc_now()
        return self._transition(
            job_id,
            from_statuses=(JobStatus.PROCESSING,),
            values={
                "status": status.value,
                "error": error,
                "completed_at": to_db_datetime(now),
                "updated_at": to_db_datetime(now),
            },
        )

    def _transition(
        self,
        job_id: str,
        *,
        from_statuses: tuple[JobStatus, ...],
        values: dict[str, object],
    ) -> bool:
        with Session(self.engine) as session:
            result = session.exec(
                sa_update(PipelineJob)
                .where(
                    col(PipelineJob.job_id) == job_id,
                    col(PipelineJob.user_id) == self.user_id,
                    col(PipelineJob.status).in_([status.value for status in from_statuses]),
                )
                .values(**values),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            session.commit()
            return True


def _to_job_view(row: PipelineJob) -> PipelineJobView:
    return PipelineJobView(
        job_id=row.job_id,
        user_id=row.user_id,
        job_type=JobType(row.job_type),
        status=JobStatus(row.status),
        payload=load_json_dict(row.payload_json),
        tracked_task_id=row.tracked_task_id,
        target_id=row.target_id,
        error=row.error,
        started_at=optional_utc(row.started_at),
        completed_at=optional_utc(row.completed_at),
        created_at=to_utc_aware_datetime(row.created_at),
        updated_at=to_utc_aware_datetime(row.updated_at),
    )
