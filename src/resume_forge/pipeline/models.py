"""Pipeline-job models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class JobType(str, Enum):
    OPTIMIZE_RESUME = "optimize_resume"
    ADD_SKILL = "add_skill"
    PREP_GUIDE = "prep_guide"
    COVER_LETTER = "cover_letter"


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"


JOB_CREATED_EVENT = "pipeline_job_created"


@dataclass(slots=True)
class PipelineJobCreate:
    job_type: JobType
    payload: dict[str, Any] = field(default_factory=dict)
    tracked_task_id: str | None = None
    target_id: str | None = None
    job_id: str | None = None


@dataclass(slots=True)
class PipelineJobView:
    """Full job document, also the payload of the creation trigger."""

    job_id: str
    user_id: str
    job_type: JobType
    status: JobStatus
    payload: dict[str, Any]
    tracked_task_id: str | None
    target_id: str | None
    error: str | None
    started_at: datetime | None
    completed_at: datetime | None
    created_at: datetime
    updated_at: datetime
