"""Client-side opportunistic executor for queued tracked tasks."""

from __future__ import annotations

import logging
import signal
import threading
import time
from collections.abc import Callable, Iterable, Iterator
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass

from resume_forge.pipeline.cancellation import CancellationToken
from resume_forge.storage.database import Database, UserContext
from resume_forge.tasks.models import TaskType, TrackedTaskStatus, TrackedTaskView
from resume_forge.tasks.reaper import StaleTaskReaper
from resume_forge.tasks.repository import TaskRepository
from resume_forge.tasks.runner import TaskOutcome, TaskResult, TaskRunner

logger = logging.getLogger(__name__)

Alert = Callable[[str], None]

ALERT_TEMPLATE = "Optimization for {subject} failed: {message}"


def log_alert(message: str) -> None:
    logger.warning("ALERT: %s", message)


@dataclass(slots=True)
class PickerRunSummary:
    """Aggregate picker counters for CLI reporting."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    cancelled: int = 0
    skipped: int = 0
    reaped: int = 0
    idle_polls: int = 0


class QueuePicker:
    """Starts each queued task at most once per picker instance.

    Every snapshot of the user's active tasks is filtered to ``queued`` entries
    not already started here; those are handed to the runner on a thread pool.
    The id leaves the started set when the run settles, whatever the outcome.
    """

    def __init__(  # noqa: PLR0913
        self,
        database: Database,
        runner: TaskRunner,
        *,
        context: UserContext,
        executor_id: str,
        alert: Alert = log_alert,
        max_workers: int = 2,
        poll_interval_seconds: float = 2.0,
        reaper: StaleTaskReaper | None = None,
    ) -> None:
        self.tasks = TaskRepository(database, context=context)
        self.runner = runner
        self.executor_id = executor_id
        self.alert = alert
        self.poll_interval_seconds = poll_interval_seconds
        self.reaper = reaper
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="picker")
        self._lock = threading.Lock()
        self._started: set[str] = set()
        self._tokens: dict[str, CancellationToken] = {}
        self._stop_requested = False

    def process_snapshot(self, snapshot: Iterable[TrackedTaskView]) -> list[Future[TaskResult]]:
        """Schedule every new queued task in ``snapshot``; returns the futures scheduled."""

        scheduled: list[Future[TaskResult]] = []
        for task in snapshot:
            if task.status != TrackedTaskStatus.QUEUED or not self.runner.supports(task.task_type):
                continue
            with self._lock:
                if task.task_id in self._started:
                    continue
                existing = self._tokens.get(task.task_id)
                if existing is not None and existing.requested:
                    continue
                self._started.add(task.task_id)
                token = self._tokens.setdefault(task.task_id, CancellationToken())
            future = self._pool.submit(self._execute, task, token)
            scheduled.append(future)
        return scheduled

    def cancel_local(self, task_id: str) -> None:
        """Signal an abort; a task that has not started yet is skipped entirely."""

        with self._lock:
            token = self._tokens.setdefault(task_id, CancellationToken())
        token.cancel()

    def run_once(self) -> PickerRunSummary:
        """Poll one snapshot and wait for everything it scheduled."""

        summary = PickerRunSummary()
        self._prune_tokens()
        snapshot = self.tasks.list_queued_tasks(
            task_types=[TaskType(name) for name in self.runner.executors if name in _TASK_TYPES],
        )
        futures = self.process_snapshot(snapshot)
        if not futures:
            summary.idle_polls = 1
            return summary
        for future in futures:
            _count(summary, future.result())
        return summary

    def run_loop(
        self,
        *,
        max_tasks: int | None = None,
        max_idle_polls: int = 1,
    ) -> PickerRunSummary:
        """Reap stale tasks, then poll until idle, ``max_tasks``, or a stop signal."""

        aggregate = PickerRunSummary()
        if self.reaper is not None:
            aggregate.reaped = len(self.reaper.run())

        consecutive_idle = 0
        with self._signal_handlers():
            while True:
                if self._stop_requested:
                    return aggregate
                if max_tasks is not None and aggregate.processed >= max_tasks:
                    return aggregate

                summary = self.run_once()
                aggregate.processed += summary.processed
                aggregate.succeeded += summary.succeeded
                aggregate.failed += summary.failed
                aggregate.cancelled += summary.cancelled
                aggregate.skipped += summary.skipped
                aggregate.idle_polls += summary.idle_polls

                if summary.processed == 0:
                    consecutive_idle += 1
                    if consecutive_idle >= max_idle_polls:
                        return aggregate
                    self._sleep_with_stop(self.poll_interval_seconds)
                    continue
                consecutive_idle = 0

    def shutdown(self, *, wait: bool = True) -> None:
        self._stop_requested = True
        self._pool.shutdown(wait=wait)

    def _execute(self, task: TrackedTaskView, token: CancellationToken) -> TaskResult:
        try:
            result = self.runner.execute(task, executor_id=self.executor_id, token=token)
        finally:
            self._settle(task.task_id)
        if result.outcome == TaskOutcome.FAILED:
            message = result.error or "Unknown error"
            self.alert(ALERT_TEMPLATE.format(subject=task.subject, message=message))
        return result

    def _settle(self, task_id: str) -> None:
        with self._lock:
            self._started.discard(task_id)
            token = self._tokens.get(task_id)
            if token is not None and not token.requested:
                del self._tokens[task_id]

    def _prune_tokens(self) -> None:
        """Forget cancel signals for tasks that are gone or already terminal."""

        with self._lock:
            idle = [task_id for task_id in self._tokens if task_id not in self._started]
        for task_id in idle:
            task = self.tasks.get_task(task_id)
            if task is not None and not task.is_terminal:
                continue
            with self._lock:
                if task_id not in self._started:
                    self._tokens.pop(task_id, None)

    def _sleep_with_stop(self, seconds: float) -> None:
        deadline = time.monotonic() + seconds
        while not self._stop_requested and time.monotonic() < deadline:
            time.sleep(min(0.1, max(0.0, deadline - time.monotonic())))

    @contextmanager
    def _signal_handlers(self) -> Iterator[None]:
        original_sigint = signal.getsignal(signal.SIGINT)
        original_sigterm = signal.getsignal(signal.SIGTERM)

        def _handler(signum: int, _: object | None) -> None:
            logger.info("Received %s; stopping after in-flight tasks", signal.Signals(signum).name)
            self._stop_requested = True

        installed = True
        try:
            signal.signal(signal.SIGINT, _handler)
            signal.signal(signal.SIGTERM, _handler)
        except ValueError:
            # Signal handlers can only be installed in main thread.
            installed = False
        try:
            yield
        finally:
            if installed:
                signal.signal(signal.SIGINT, original_sigint)
                signal.signal(signal.SIGTERM, original_sigterm)


_TASK_TYPES = {task_type.value for task_type in TaskType}


def _count(summary: PickerRunSummary, result: TaskResult) -> None:
    if result.outcome == TaskOutcome.SKIPPED:
        summary.skipped += 1
        return
    summary.processed += 1
    if result.outcome == TaskOutcome.COMPLETED:
        summary.succeeded += 1
    elif result.outcome == TaskOutcome.FAILED:
        summary.failed += 1
    else:
        summary.cancelled += 1
