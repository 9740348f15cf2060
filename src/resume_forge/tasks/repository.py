"""Tracked-task store: state machine, claims, and the event audit trail."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from datetime import datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import delete as sa_delete
from sqlalchemy import func
from sqlalchemy import update as sa_update
from sqlmodel import Session, col, select

from resume_forge.storage.common import (
    dump_json,
    load_json_dict,
    optional_utc,
    to_db_datetime,
    to_utc_aware_datetime,
    utc_now,
)
from resume_forge.storage.database import Database, UserContext
from resume_forge.storage.sqlmodel_models import TrackedTask, TrackedTaskEvent
from resume_forge.tasks.models import (
    ACTIVE_STATUSES,
    PENDING_STAGE,
    TaskClaim,
    TaskType,
    TrackedTaskCreate,
    TrackedTaskDetails,
    TrackedTaskEventView,
    TrackedTaskStatus,
    TrackedTaskView,
)

logger = logging.getLogger(__name__)

COMPLETE_STAGE = "Complete"
_ACTIVE_VALUES = tuple(status.value for status in ACTIVE_STATUSES)


class TaskRepository:
    """Tracked-task persistence facade backed by SQLModel + SQLite.

    Writes made on behalf of an executor take a :class:`TaskClaim` and are
    conditional on the claim token and ``status=processing``. They return
    ``False`` when the task was deleted, finished, or claimed by someone else,
    so at most one terminal write ever lands per task.
    """

    def __init__(self, database: Database, *, context: UserContext) -> None:
        self.database = database
        self.engine = database.engine
        self.user_id = context.user_id

    def create_task(self, payload: TrackedTaskCreate) -> TrackedTaskView:
        """Create a queued task."""

        now = utc_now()
        task_id = payload.task_id or str(uuid4())
        task_type = TaskType(payload.task_type)
        with Session(self.engine) as session:
            row = TrackedTask(
                task_id=task_id,
                user_id=self.user_id,
                task_type=task_type.value,
                status=TrackedTaskStatus.QUEUED.value,
                progress=0,
                stage=PENDING_STAGE,
                payload_json=dump_json(payload.payload),
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            self._add_event(
                session=session,
                task_id=task_id,
                event_type="created",
                status_from=None,
                status_to=TrackedTaskStatus.QUEUED,
                details={"task_type": task_type.value},
            )
            session.commit()
            session.refresh(row)
            return _to_task_view(row)

    def claim_task(self, task_id: str, *, executor_id: str) -> TaskClaim | None:
        """Move ``queued -> processing``; ``None`` when another executor got there first."""

        now = utc_now()
        claim = TaskClaim(task_id=task_id, claim_token=str(uuid4()), executor_id=executor_id)
        with Session(self.engine) as session:
            result = session.exec(
                sa_update(TrackedTask)
                .where(
                    col(TrackedTask.task_id) == task_id,
                    col(TrackedTask.user_id) == self.user_id,
                    col(TrackedTask.status) == TrackedTaskStatus.QUEUED.value,
                )
                .values(
                    status=TrackedTaskStatus.PROCESSING.value,
                    claim_token=claim.claim_token,
                    executor_id=executor_id,
                    started_at=to_db_datetime(now),
                    updated_at=to_db_datetime(now),
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                return None
            self._add_event(
                session=session,
                task_id=task_id,
                event_type="claimed",
                status_from=TrackedTaskStatus.QUEUED,
                status_to=TrackedTaskStatus.PROCESSING,
                details={"executor_id": executor_id},
            )
            session.commit()
        logger.info("Executor %s claimed task %s", executor_id, task_id)
        return claim

    def claim_next_queued(
        self,
        *,
        executor_id: str,
        task_types: Iterable[TaskType] | None = None,
    ) -> tuple[TrackedTaskView, TaskClaim] | None:
        """Claim the oldest queued task, skipping ones lost to a concurrent claim."""

        types = [TaskType(task_type).value for task_type in task_types] if task_types else None
        while True:
            with Session(self.engine) as session:
                statement = select(TrackedTask.task_id).where(
                    TrackedTask.user_id == self.user_id,
                    TrackedTask.status == TrackedTaskStatus.QUEUED.value,
                )
                if types is not None:
                    statement = statement.where(col(TrackedTask.task_type).in_(types))
                candidate = session.exec(
                    statement.order_by(col(TrackedTask.created_at).asc()).limit(1),
                ).one_or_none()
            if candidate is None:
                return None
            claim = self.claim_task(candidate, executor_id=executor_id)
            if claim is None:
                continue
            task = self.get_task(candidate)
            if task is None:
                continue
            return task, claim

    def update_progress(self, claim: TaskClaim, *, progress: int, stage: str) -> bool:
        """Record a checkpoint. Progress never moves backwards."""

        now = utc_now()
        bounded = max(0, min(100, progress))
        with Session(self.engine) as session:
            result = session.exec(
                sa_update(TrackedTask)
                .where(*self._claimed(claim))
                .values(
                    progress=func.max(col(TrackedTask.progress), bounded),
                    stage=stage,
                    updated_at=to_db_datetime(now),
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            session.commit()
            return True

    def complete_task(self, claim: TaskClaim, *, result_id: str | None = None) -> bool:
        now = utc_now()
        with Session(self.engine) as session:
            result = session.exec(
                sa_update(TrackedTask)
                .where(*self._claimed(claim))
                .values(
                    status=TrackedTaskStatus.COMPLETED.value,
                    progress=100,
                    stage=COMPLETE_STAGE,
                    result_id=result_id,
                    finished_at=to_db_datetime(now),
                    updated_at=to_db_datetime(now),
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            self._add_event(
                session=session,
                task_id=claim.task_id,
                event_type="completed",
                status_from=TrackedTaskStatus.PROCESSING,
                status_to=TrackedTaskStatus.COMPLETED,
                details={"result_id": result_id} if result_id else {},
            )
            session.commit()
            return True

    def fail_task(
        self,
        claim: TaskClaim,
        *,
        error: str,
        details: dict[str, object] | None = None,
    ) -> bool:
        return self._finish_claimed(
            claim,
            status=TrackedTaskStatus.FAILED,
            error=error,
            event_type="failed",
            details={"error": error, **(details or {})},
        )

    def cancel_claimed(self, claim: TaskClaim, *, reason: str) -> bool:
        """The executor observed a cancellation request at a checkpoint."""

        return self._finish_claimed(
            claim,
            status=TrackedTaskStatus.CANCELLED,
            error=reason,
            event_type="cancelled",
            details={"reason": reason},
        )

    def fail_unclaimed(
        self,
        task_id: str,
        *,
        error: str,
        event_type: str = "failed",
    ) -> bool:
        """Fail a task from whatever active state it is in, without a claim."""

        now = utc_now()
        with Session(self.engine) as session:
            previous = session.exec(
                select(TrackedTask.status).where(
                    TrackedTask.task_id == task_id,
                    TrackedTask.user_id == self.user_id,
                ),
            ).one_or_none()
            if previous is None or previous not in _ACTIVE_VALUES:
                return False
            result = session.exec(
                sa_update(TrackedTask)
                .where(
                    col(TrackedTask.task_id) == task_id,
                    col(TrackedTask.user_id) == self.user_id,
                    col(TrackedTask.status) == previous,
                )
                .values(
                    status=TrackedTaskStatus.FAILED.value,
                    error=error,
                    finished_at=to_db_datetime(now),
                    updated_at=to_db_datetime(now),
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            self._add_event(
                session=session,
                task_id=task_id,
                event_type=event_type,
                status_from=TrackedTaskStatus(previous),
                status_to=TrackedTaskStatus.FAILED,
                details={"error": error},
            )
            session.commit()
            return True

    def cancel_task(self, task_id: str) -> None:
        """Cancel a queued/processing task on the user's request."""

        now = utc_now()
        with Session(self.engine) as session:
            row = session.exec(
                select(TrackedTask).where(
                    TrackedTask.task_id == task_id,
                    TrackedTask.user_id == self.user_id,
                ),
            ).one_or_none()
            if row is None:
                raise RuntimeError(f"Task not found: {task_id}")

            previous = TrackedTaskStatus(row.status)
            if previous not in ACTIVE_STATUSES:
                raise RuntimeError(f"Task cannot be canceled from status={row.status}")

            result = session.exec(
                sa_update(TrackedTask)
                .where(
                    col(TrackedTask.task_id) == task_id,
                    col(TrackedTask.user_id) == self.user_id,
                    col(TrackedTask.status) == previous.value,
                )
                .values(
                    status=TrackedTaskStatus.CANCELLED.value,
                    error="Task was cancelled by user",
                    finished_at=to_db_datetime(now),
                    updated_at=to_db_datetime(now),
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                raise RuntimeError(
                    "Task state changed concurrently while canceling; "
                    f"please retry command (task_id={task_id}).",
                )
            self._add_event(
                session=session,
                task_id=task_id,
                event_type="cancelled",
                status_from=previous,
                status_to=TrackedTaskStatus.CANCELLED,
                details={},
            )
            session.commit()

    def delete_task(self, task_id: str) -> bool:
        """Delete the task and its events; only the owning user's rows match."""

        with Session(self.engine) as session:
            session.exec(
                sa_delete(TrackedTaskEvent).where(
                    col(TrackedTaskEvent.task_id) == task_id,
                    col(TrackedTaskEvent.user_id) == self.user_id,
                ),
            )
            result = session.exec(
                sa_delete(TrackedTask).where(
                    col(TrackedTask.task_id) == task_id,
                    col(TrackedTask.user_id) == self.user_id,
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            session.commit()
        logger.info("Deleted task %s", task_id)
        return True

    def get_task(self, task_id: str) -> TrackedTaskView | None:
        with Session(self.engine) as session:
            row = session.exec(
                select(TrackedTask).where(
                    TrackedTask.task_id == task_id,
                    TrackedTask.user_id == self.user_id,
                ),
            ).one_or_none()
        return _to_task_view(row) if row is not None else None

    def list_tasks(
        self,
        *,
        status: TrackedTaskStatus | None = None,
        limit: int = 50,
    ) -> list[TrackedTaskView]:
        """List recent tasks, optionally filtered by status."""

        with Session(self.engine) as session:
            statement = (
                select(TrackedTask)
                .where(TrackedTask.user_id == self.user_id)
                .order_by(col(TrackedTask.created_at).desc())
                .limit(limit)
            )
            if status is not None:
                statement = statement.where(TrackedTask.status == status.value)
            rows = session.exec(statement).all()
        return [_to_task_view(row) for row in rows]

    def list_active_tasks(self, *, limit: int = 10) -> list[TrackedTaskView]:
        """Queued and processing tasks, newest first; the client's live snapshot."""

        with Session(self.engine) as session:
            rows = session.exec(
                select(TrackedTask)
                .where(
                    TrackedTask.user_id == self.user_id,
                    col(TrackedTask.status).in_(_ACTIVE_VALUES),
                )
                .order_by(col(TrackedTask.created_at).desc())
                .limit(limit),
            ).all()
        return [_to_task_view(row) for row in rows]

    def list_queued_tasks(
        self,
        *,
        task_types: Iterable[TaskType] | None = None,
        limit: int = 50,
    ) -> list[TrackedTaskView]:
        with Session(self.engine) as session:
            statement = select(TrackedTask).where(
                TrackedTask.user_id == self.user_id,
                TrackedTask.status == TrackedTaskStatus.QUEUED.value,
            )
            if task_types:
                statement = statement.where(
                    col(TrackedTask.task_type).in_([TaskType(item).value for item in task_types]),
                )
            rows = session.exec(
                statement.order_by(col(TrackedTask.created_at).asc()).limit(limit),
            ).all()
        return [_to_task_view(row) for row in rows]

    def list_stale_tasks(self, *, older_than: datetime) -> list[TrackedTaskView]:
        """Active tasks created strictly before ``older_than``."""

        with Session(self.engine) as session:
            rows = session.exec(
                select(TrackedTask)
                .where(
                    TrackedTask.user_id == self.user_id,
                    col(TrackedTask.status).in_(_ACTIVE_VALUES),
                    col(TrackedTask.created_at) < to_db_datetime(older_than),
                )
                .order_by(col(TrackedTask.created_at).asc()),
            ).all()
        return [_to_task_view(row) for row in rows]

    def get_task_details(self, task_id: str) -> TrackedTaskDetails | None:
        """Return task details with event stream."""

        with Session(self.engine) as session:
            task = session.exec(
                select(TrackedTask).where(
                    TrackedTask.task_id == task_id,
                    TrackedTask.user_id == self.user_id,
                ),
            ).one_or_none()
            if task is None:
                return None

            event_rows = session.exec(
                select(TrackedTaskEvent)
                .where(
                    TrackedTaskEvent.task_id == task_id,
                    TrackedTaskEvent.user_id == self.user_id,
                )
                .order_by(col(TrackedTaskEvent.created_at).asc(), col(TrackedTaskEvent.id).asc()),
            ).all()

        events = [
            TrackedTaskEventView(
                event_id=row.id or 0,
                task_id=row.task_id,
                event_type=row.event_type,
                status_from=(
                    TrackedTaskStatus(row.status_from) if row.status_from is not None else None
                ),
                status_to=TrackedTaskStatus(row.status_to) if row.status_to is not None else None,
                created_at=to_utc_aware_datetime(row.created_at),
                details=load_json_dict(row.details_json),
            )
            for row in event_rows
        ]
        return TrackedTaskDetails(task=_to_task_view(task), events=events)

    def _claimed(self, claim: TaskClaim) -> tuple[Any, ...]:
        return (
            col(TrackedTask.task_id) == claim.task_id,
            col(TrackedTask.user_id) == self.user_id,
            col(TrackedTask.status) == TrackedTaskStatus.PROCESSING.value,
            col(TrackedTask.claim_token) == claim.claim_token,
        )

    def _finish_claimed(
        self,
        claim: TaskClaim,
        *,
        status: TrackedTaskStatus,
        error: str,
        event_type: str,
        details: dict[str, object],
    ) -> bool:
        now = utc_now()
        with Session(self.engine) as session:
            result = session.exec(
                sa_update(TrackedTask)
                .where(*self._claimed(claim))
                .values(
                    status=status.value,
                    error=error,
                    finished_at=to_db_datetime(now),
                    updated_at=to_db_datetime(now),
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            self._add_event(
                session=session,
                task_id=claim.task_id,
                event_type=event_type,
                status_from=TrackedTaskStatus.PROCESSING,
                status_to=status,
                details=details,
            )
            session.commit()
            return True

    def _add_event(  # noqa: PLR0913
        self,
        *,
        session: Session,
        task_id: str,
        event_type: str,
        status_from: TrackedTaskStatus | None,
        status_to: TrackedTaskStatus | None,
        details: dict[str, object],
    ) -> None:
        session.add(
            TrackedTaskEvent(
                task_id=task_id,
                user_id=self.user_id,
                event_type=event_type,
                status_from=status_from.value if status_from is not None else None,
                status_to=status_to.value if status_to is not None else None,
                details_json=json.dumps(details, ensure_ascii=False, sort_keys=True)
                if details
                else None,
                created_at=utc_now(),
            ),
        )


def _to_task_view(row: TrackedTask) -> TrackedTaskView:
    return TrackedTaskView(
        task_id=row.task_id,
        user_id=row.user_id,
        task_type=row.task_type,
        status=TrackedTaskStatus(row.status),
        progress=row.progress,
        stage=row.stage,
        payload=load_json_dict(row.payload_json),
        result_id=row.result_id,
        error=row.error,
        executor_id=row.executor_id,
        started_at=optional_utc(row.started_at),
        finished_at=optional_utc(row.finished_at),
        created_at=to_utc_aware_datetime(row.created_at),
        updated_at=to_utc_aware_datetime(row.updated_at),
    )
