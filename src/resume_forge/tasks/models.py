"""Tracked-task models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class TrackedTaskStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset(
    {TrackedTaskStatus.COMPLETED, TrackedTaskStatus.FAILED, TrackedTaskStatus.CANCELLED},
)
ACTIVE_STATUSES = frozenset({TrackedTaskStatus.QUEUED, TrackedTaskStatus.PROCESSING})


class TaskType(str, Enum):
    ANALYZE_RESUME = "analyze_resume"
    OPTIMIZE_RESUME = "optimize_resume"
    ADD_SKILL = "add_skill"


PENDING_STAGE = "Pending..."


@dataclass(slots=True)
class TrackedTaskCreate:
    task_type: TaskType
    payload: dict[str, Any] = field(default_factory=dict)
    task_id: str | None = None


@dataclass(slots=True)
class TrackedTaskView:
    """Read model of one tracked task, as delivered to subscribers."""

    task_id: str
    user_id: str
    task_type: str
    status: TrackedTaskStatus
    progress: int
    stage: str
    payload: dict[str, Any]
    result_id: str | None
    error: str | None
    executor_id: str | None
    started_at: datetime | None
    finished_at: datetime | None
    created_at: datetime
    updated_at: datetime

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def subject(self) -> str:
        """Human label for alerts: the company from the payload, else ``Job``."""

        company = self.payload.get("company_name") or self.payload.get("company")
        if isinstance(company, str) and company.strip():
            return company.strip()
        job = self.payload.get("job")
        if isinstance(job, dict):
            nested = job.get("company") or job.get("company_name")
            if isinstance(nested, str) and nested.strip():
                return nested.strip()
        return "Job"


@dataclass(frozen=True, slots=True)
class TaskClaim:
    """Ownership proof returned by a successful claim; guards every later write."""

    task_id: str
    claim_token: str
    executor_id: str


@dataclass(slots=True)
class TrackedTaskEventView:
    event_id: int
    task_id: str
    event_type: str
    status_from: TrackedTaskStatus | None
    status_to: TrackedTaskStatus | None
    created_at: datetime
    details: dict[str, object]


@dataclass(slots=True)
class TrackedTaskDetails:
    task: TrackedTaskView
    events: list[TrackedTaskEventView]
