from __future__ import annotations

from datetime import UTC, datetime, timedelta

import allure
from conftest import backdate_task

from resume_forge.storage.database import Database, UserContext
from resume_forge.tasks.models import TaskType, TrackedTaskCreate, TrackedTaskStatus
from resume_forge.tasks.reaper import StaleTaskReaper
from resume_forge.tasks.repository import TaskRepository

pytestmark = [
    allure.epic("Task Orchestration"),
    allure.feature("Stale Task Reaper"),
]


def test_reaper_fails_only_old_active_tasks(database: Database, context: UserContext) -> None:
    repository = TaskRepository(database, context=context)
    now = datetime.now(tz=UTC)
    old_queued = repository.create_task(TrackedTaskCreate(task_type=TaskType.ANALYZE_RESUME))
    old_processing = repository.create_task(TrackedTaskCreate(task_type=TaskType.ADD_SKILL))
    old_completed = repository.create_task(TrackedTaskCreate(task_type=TaskType.ADD_SKILL))
    fresh = repository.create_task(TrackedTaskCreate(task_type=TaskType.OPTIMIZE_RESUME))

    assert repository.claim_task(old_processing.task_id, executor_id="picker-1") is not None
    done_claim = repository.claim_task(old_completed.task_id, executor_id="picker-1")
    assert done_claim is not None
    assert repository.complete_task(done_claim)
    for task in (old_queued, old_processing, old_completed):
        backdate_task(database, task.task_id, now - timedelta(minutes=11))
    backdate_task(database, fresh.task_id, now - timedelta(minutes=9))

    reaped = StaleTaskReaper(repository).run(now=now)

    assert set(reaped) == {old_queued.task_id, old_processing.task_id}
    for task_id in reaped:
        task = repository.get_task(task_id)
        assert task is not None
        assert task.status == TrackedTaskStatus.FAILED
        assert task.error == "stale timeout"
    untouched = repository.get_task(fresh.task_id)
    assert untouched is not None
    assert untouched.status == TrackedTaskStatus.QUEUED
    completed = repository.get_task(old_completed.task_id)
    assert completed is not None
    assert completed.status == TrackedTaskStatus.COMPLETED

    details = repository.get_task_details(old_queued.task_id)
    assert details is not None
    assert details.events[-1].event_type == "stale_timeout"


def test_reaper_uses_configured_window(database: Database, context: UserContext) -> None:
    repository = TaskRepository(database, context=context)
    now = datetime.now(tz=UTC)
    task = repository.create_task(TrackedTaskCreate(task_type=TaskType.ANALYZE_RESUME))
    backdate_task(database, task.task_id, now - timedelta(minutes=3))

    assert StaleTaskReaper(repository).run(now=now) == []
    assert StaleTaskReaper(repository, stale_after=timedelta(minutes=2)).run(now=now) == [
        task.task_id,
    ]


def test_reaper_is_scoped_to_current_user(database: Database, context: UserContext) -> None:
    other_context = UserContext(user_id="user-b")
    database.ensure_user(other_context)
    other_repository = TaskRepository(database, context=other_context)
    now = datetime.now(tz=UTC)
    task = other_repository.create_task(TrackedTaskCreate(task_type=TaskType.ANALYZE_RESUME))
    backdate_task(database, task.task_id, now - timedelta(hours=1))

    assert StaleTaskReaper(TaskRepository(database, context=context)).run(now=now) == []
    other_task = other_repository.get_task(task.task_id)
    assert other_task is not None
    assert other_task.status == TrackedTaskStatus.QUEUED
