"""Polling subscriptions over tracked tasks."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import replace

from sqlalchemy.exc import SQLAlchemyError

from resume_forge.errors import TaskGone
from resume_forge.storage.common import utc_now
from resume_forge.tasks.models import TrackedTaskStatus, TrackedTaskView
from resume_forge.tasks.repository import TaskRepository

logger = logging.getLogger(__name__)

OnUpdate = Callable[[TrackedTaskView], None]
OnError = Callable[[Exception], None]

DELETED_TASK_MESSAGE = "Task was cancelled by user"


class TaskSubscriptions:
    """``subscribe`` starts one polling thread per subscription.

    Every observed change of status, progress, stage, or update time is
    delivered, so the same state may arrive twice after a restart. Polling
    stops at a terminal state. A task that disappears after it was seen is
    delivered once more as a synthetic ``cancelled`` view.
    """

    def __init__(self, tasks: TaskRepository, *, poll_interval_seconds: float = 1.0) -> None:
        self.tasks = tasks
        self.poll_interval_seconds = poll_interval_seconds

    def subscribe(
        self,
        task_id: str,
        on_update: OnUpdate,
        on_error: OnError | None = None,
    ) -> Callable[[], None]:
        """Start delivering updates for ``task_id``; returns an unsubscribe callable."""

        stop = threading.Event()
        thread = threading.Thread(
            target=self._poll,
            args=(task_id, on_update, on_error or _log_error, stop),
            name=f"subscription-{task_id[:8]}",
            daemon=True,
        )
        thread.start()

        def _unsubscribe() -> None:
            stop.set()
            if thread is not threading.current_thread():
                thread.join(timeout=max(1.0, self.poll_interval_seconds * 2))

        return _unsubscribe

    def _poll(
        self,
        task_id: str,
        on_update: OnUpdate,
        on_error: OnError,
        stop: threading.Event,
    ) -> None:
        last_seen: TrackedTaskView | None = None
        while not stop.is_set():
            try:
                current = self.tasks.get_task(task_id)
            except SQLAlchemyError as exc:
                on_error(exc)
                stop.wait(self.poll_interval_seconds)
                continue

            if current is None:
                if last_seen is None:
                    on_error(TaskGone(task_id))
                elif not last_seen.is_terminal:
                    on_update(_deleted_view(last_seen))
                return

            if last_seen is None or _fingerprint(current) != _fingerprint(last_seen):
                on_update(current)
                last_seen = current
            if current.is_terminal:
                return
            stop.wait(self.poll_interval_seconds)


def _fingerprint(task: TrackedTaskView) -> tuple[object, ...]:
    return (task.status, task.progress, task.stage, task.updated_at)


def _deleted_view(last_seen: TrackedTaskView) -> TrackedTaskView:
    now = utc_now()
    return replace(
        last_seen,
        status=TrackedTaskStatus.CANCELLED,
        error=DELETED_TASK_MESSAGE,
        finished_at=now,
        updated_at=now,
    )


def _log_error(error: Exception) -> None:
    logger.warning("Task subscription error: %s", error)
