from __future__ import annotations

import queue
import threading

import allure
import pytest

from resume_forge.storage.database import Database, UserContext
from resume_forge.tasks.models import TaskType, TrackedTaskCreate, TrackedTaskStatus
from resume_forge.tasks.repository import TaskRepository

pytestmark = [
    allure.epic("Task Orchestration"),
    allure.feature("Tracked Task State Machine"),
]


def _queued(repository: TaskRepository, task_type: TaskType = TaskType.OPTIMIZE_RESUME):
    return repository.create_task(
        TrackedTaskCreate(task_type=task_type, payload={"company_name": "Acme"}),
    )


def test_task_lifecycle_and_events(database: Database, context: UserContext) -> None:
    repository = TaskRepository(database, context=context)
    task = _queued(repository)

    assert task.status == TrackedTaskStatus.QUEUED
    assert task.progress == 0
    assert task.stage == "Pending..."
    assert task.subject == "Acme"

    claim = repository.claim_task(task.task_id, executor_id="picker-1")
    assert claim is not None
    assert repository.update_progress(claim, progress=40, stage="Optimizing resume...")
    assert repository.complete_task(claim, result_id="analysis-1")

    final = repository.get_task(task.task_id)
    assert final is not None
    assert final.status == TrackedTaskStatus.COMPLETED
    assert final.progress == 100
    assert final.stage == "Complete"
    assert final.result_id == "analysis-1"
    assert final.executor_id == "picker-1"
    assert final.started_at is not None
    assert final.finished_at is not None

    details = repository.get_task_details(task.task_id)
    assert details is not None
    assert [event.event_type for event in details.events] == ["created", "claimed", "completed"]
    assert details.events[-1].status_to == TrackedTaskStatus.COMPLETED


def test_progress_never_decreases(database: Database, context: UserContext) -> None:
    repository = TaskRepository(database, context=context)
    task = _queued(repository)
    claim = repository.claim_task(task.task_id, executor_id="picker-1")
    assert claim is not None

    assert repository.update_progress(claim, progress=60, stage="Later stage")
    assert repository.update_progress(claim, progress=30, stage="Earlier stage")

    current = repository.get_task(task.task_id)
    assert current is not None
    assert current.progress == 60


def test_second_claim_loses(database: Database, context: UserContext) -> None:
    repository = TaskRepository(database, context=context)
    task = _queued(repository)

    first = repository.claim_task(task.task_id, executor_id="picker-1")
    second = repository.claim_task(task.task_id, executor_id="server")

    assert first is not None
    assert second is None


def test_racing_claims_yield_exactly_one_completion(
    database: Database,
    context: UserContext,
) -> None:
    task = _queued(TaskRepository(database, context=context))
    start = threading.Event()
    results: queue.Queue[bool] = queue.Queue()

    def _claim_and_complete(executor_id: str) -> None:
        repository = TaskRepository(database, context=context)
        start.wait(timeout=2)
        claim = repository.claim_task(task.task_id, executor_id=executor_id)
        results.put(claim is not None and repository.complete_task(claim, result_id=executor_id))

    threads = [
        threading.Thread(target=_claim_and_complete, args=(f"executor-{index}",))
        for index in range(4)
    ]
    for thread in threads:
        thread.start()
    start.set()
    for thread in threads:
        thread.join(timeout=10)

    outcomes = [results.get_nowait() for _ in threads]
    assert outcomes.count(True) == 1
    details = TaskRepository(database, context=context).get_task_details(task.task_id)
    assert details is not None
    assert [event.event_type for event in details.events].count("completed") == 1


def test_stale_claim_cannot_write_after_cancel(database: Database, context: UserContext) -> None:
    repository = TaskRepository(database, context=context)
    task = _queued(repository)
    claim = repository.claim_task(task.task_id, executor_id="picker-1")
    assert claim is not None

    repository.cancel_task(task.task_id)

    assert repository.update_progress(claim, progress=80, stage="Saving...") is False
    assert repository.complete_task(claim, result_id="x") is False
    assert repository.fail_task(claim, error="boom") is False
    cancelled = repository.get_task(task.task_id)
    assert cancelled is not None
    assert cancelled.status == TrackedTaskStatus.CANCELLED
    assert cancelled.error == "Task was cancelled by user"


def test_deleted_task_rejects_claimed_writes(database: Database, context: UserContext) -> None:
    repository = TaskRepository(database, context=context)
    task = _queued(repository)
    claim = repository.claim_task(task.task_id, executor_id="picker-1")
    assert claim is not None

    assert repository.delete_task(task.task_id) is True

    assert repository.get_task(task.task_id) is None
    assert repository.update_progress(claim, progress=50, stage="x") is False
    assert repository.delete_task(task.task_id) is False


def test_cancel_rejects_terminal_and_unknown_tasks(
    database: Database,
    context: UserContext,
) -> None:
    repository = TaskRepository(database, context=context)
    task = _queued(repository)
    claim = repository.claim_task(task.task_id, executor_id="picker-1")
    assert claim is not None
    assert repository.fail_task(claim, error="Provider down")

    with pytest.raises(RuntimeError, match="cannot be canceled"):
        repository.cancel_task(task.task_id)
    with pytest.raises(RuntimeError, match="Task not found"):
        repository.cancel_task("missing")


def test_fail_unclaimed_only_from_active_states(database: Database, context: UserContext) -> None:
    repository = TaskRepository(database, context=context)
    task = _queued(repository)

    assert repository.fail_unclaimed(task.task_id, error="invalid payload") is True
    assert repository.fail_unclaimed(task.task_id, error="again") is False

    failed = repository.get_task(task.task_id)
    assert failed is not None
    assert failed.status == TrackedTaskStatus.FAILED
    assert failed.error == "invalid payload"


def test_tasks_are_scoped_to_their_user(database: Database, context: UserContext) -> None:
    other_context = UserContext(user_id="user-b")
    database.ensure_user(other_context)
    task = _queued(TaskRepository(database, context=context))
    other = TaskRepository(database, context=other_context)

    assert other.get_task(task.task_id) is None
    assert other.claim_task(task.task_id, executor_id="intruder") is None
    assert other.delete_task(task.task_id) is False
    assert TaskRepository(database, context=context).get_task(task.task_id) is not None


def test_queued_listing_is_oldest_first_and_filtered(
    database: Database,
    context: UserContext,
) -> None:
    repository = TaskRepository(database, context=context)
    first = _queued(repository, TaskType.ANALYZE_RESUME)
    second = _queued(repository, TaskType.ADD_SKILL)
    third = _queued(repository, TaskType.ANALYZE_RESUME)
    claim = repository.claim_task(third.task_id, executor_id="picker-1")
    assert claim is not None

    queued = repository.list_queued_tasks()
    analyze_only = repository.list_queued_tasks(task_types=[TaskType.ANALYZE_RESUME])
    active = repository.list_active_tasks()

    assert [task.task_id for task in queued] == [first.task_id, second.task_id]
    assert [task.task_id for task in analyze_only] == [first.task_id]
    assert {task.task_id for task in active} == {first.task_id, second.task_id, third.task_id}
    processing = repository.list_tasks(status=TrackedTaskStatus.PROCESSING)
    assert [task.task_id for task in processing] == [third.task_id]


def test_claim_next_queued_takes_oldest(database: Database, context: UserContext) -> None:
    repository = TaskRepository(database, context=context)
    first = _queued(repository)
    _queued(repository)

    claimed = repository.claim_next_queued(executor_id="server")

    assert claimed is not None
    view, claim = claimed
    assert view.task_id == first.task_id
    assert claim.executor_id == "server"
