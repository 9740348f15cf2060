"""Startup sweep for tracked tasks orphaned by a killed process."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError

from resume_forge.errors import StaleTimeout
from resume_forge.storage.common import utc_now
from resume_forge.tasks.repository import TaskRepository

logger = logging.getLogger(__name__)

DEFAULT_STALE_AFTER = timedelta(minutes=10)


class StaleTaskReaper:
    """Fails queued/processing tasks created longer ago than ``stale_after``."""

    def __init__(
        self,
        tasks: TaskRepository,
        *,
        stale_after: timedelta = DEFAULT_STALE_AFTER,
    ) -> None:
        self.tasks = tasks
        self.stale_after = stale_after

    def run(self, now: datetime | None = None) -> list[str]:
        """Return ids of the tasks marked ``failed``; store errors are logged, not raised."""

        cutoff = (now or utc_now()) - self.stale_after
        try:
            stale = self.tasks.list_stale_tasks(older_than=cutoff)
        except SQLAlchemyError:
            logger.warning("Stale-task sweep could not list tasks", exc_info=True)
            return []

        reaped: list[str] = []
        for task in stale:
            try:
                failed = self.tasks.fail_unclaimed(
                    task.task_id,
                    error=StaleTimeout.reason,
                    event_type="stale_timeout",
                )
            except SQLAlchemyError:
                logger.warning("Could not reap stale task %s", task.task_id, exc_info=True)
                continue
            if failed:
                logger.warning(
                    "Reaped stale task %s (%s, created %s)",
                    task.task_id,
                    task.status.value,
                    task.created_at.isoformat(),
                )
                reaped.append(task.task_id)
        return reaped
