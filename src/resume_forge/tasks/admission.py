"""Admission control: every user-initiated job is paid for before it exists."""

from __future__ import annotations

import logging
from typing import Any
from uuid import uuid4

from resume_forge.ledger.models import ActivityType, activity_cost
from resume_forge.ledger.repository import LedgerRepository
from resume_forge.pipeline.models import JobType, PipelineJobCreate, PipelineJobView
from resume_forge.pipeline.repository import PipelineJobRepository
from resume_forge.records.models import COVER_LETTER_RESTARTABLE, PREP_GUIDE_RESTARTABLE
from resume_forge.records.repository import RecordsRepository
from resume_forge.storage.database import Database, UserContext
from resume_forge.tasks.models import TaskType, TrackedTaskCreate, TrackedTaskView
from resume_forge.tasks.repository import TaskRepository

logger = logging.getLogger(__name__)

TASK_ACTIVITIES: dict[TaskType, ActivityType] = {
    TaskType.ANALYZE_RESUME: ActivityType.GAP_ANALYSIS,
    TaskType.OPTIMIZE_RESUME: ActivityType.RESUME_OPTIMIZED,
    TaskType.ADD_SKILL: ActivityType.SKILL_INCORPORATION,
}

ACTIVITY_DESCRIPTIONS: dict[ActivityType, str] = {
    ActivityType.GAP_ANALYSIS: "Resume gap analysis",
    ActivityType.RESUME_OPTIMIZED: "Resume optimization",
    ActivityType.SKILL_INCORPORATION: "Skill incorporation",
    ActivityType.INTERVIEW_PREP_GENERATION: "Interview prep guide",
    ActivityType.COVER_LETTER_GENERATION: "Cover letter",
}

# Task types the server-side processor also executes, through a paired pipeline job.
SERVER_TRIGGERED: dict[TaskType, JobType] = {
    TaskType.OPTIMIZE_RESUME: JobType.OPTIMIZE_RESUME,
    TaskType.ADD_SKILL: JobType.ADD_SKILL,
}


class AdmissionService:
    """Debit first, create second.

    A failed debit raises :class:`InsufficientBalanceError` before any task,
    job, or record mutation happens, so a rejected request leaves no trace.
    """

    def __init__(self, database: Database, *, context: UserContext) -> None:
        self.ledger = LedgerRepository(database, context=context)
        self.tasks = TaskRepository(database, context=context)
        self.jobs = PipelineJobRepository(database, context=context)
        self.records = RecordsRepository(database, context=context)

    def create_task(self, task_type: TaskType | str, payload: dict[str, Any]) -> TrackedTaskView:
        task_type = TaskType(task_type)
        task_id = str(uuid4())
        self._debit(TASK_ACTIVITIES[task_type], resource_id=task_id)
        task = self.tasks.create_task(
            TrackedTaskCreate(task_type=task_type, payload=payload, task_id=task_id),
        )
        job_type = SERVER_TRIGGERED.get(task_type)
        if job_type is not None:
            self.jobs.create_job(
                PipelineJobCreate(
                    job_type=job_type,
                    payload=payload,
                    tracked_task_id=task.task_id,
                    target_id=payload.get("analysis_id"),
                ),
            )
        return task

    def analyze(self, *, job: dict[str, Any], resume: dict[str, Any]) -> TrackedTaskView:
        return self.create_task(TaskType.ANALYZE_RESUME, {"job": job, "resume": resume})

    def optimize(self, analysis_id: str) -> TrackedTaskView:
        return self.create_task(
            TaskType.OPTIMIZE_RESUME,
            self._analysis_payload(analysis_id),
        )

    def add_skill(self, analysis_id: str, skills: list[str]) -> TrackedTaskView:
        cleaned = [skill.strip() for skill in skills if skill.strip()]
        if not cleaned:
            raise ValueError("At least one skill is required.")
        payload = self._analysis_payload(analysis_id)
        payload["skills"] = cleaned
        return self.create_task(TaskType.ADD_SKILL, payload)

    def prep_guide(self, application_id: str) -> PipelineJobView:
        application = self.records.get_application(application_id)
        if application is None:
            raise RuntimeError(f"Application not found: {application_id}")
        if application.prep_status not in PREP_GUIDE_RESTARTABLE:
            raise RuntimeError(
                f"Prep guide for {application_id} is already {application.prep_status.value}",
            )
        self._debit(ActivityType.INTERVIEW_PREP_GENERATION, resource_id=application_id)
        if not self.records.queue_prep_guide(application_id):
            raise RuntimeError(f"Prep guide for {application_id} was queued concurrently")
        return self.jobs.create_job(
            PipelineJobCreate(
                job_type=JobType.PREP_GUIDE,
                payload={"company_name": application.company_name},
                target_id=application_id,
            ),
        )

    def cover_letter(self, application_id: str) -> PipelineJobView:
        application = self.records.get_application(application_id)
        if application is None:
            raise RuntimeError(f"Application not found: {application_id}")
        if application.cover_letter_status not in COVER_LETTER_RESTARTABLE:
            raise RuntimeError(
                f"Cover letter for {application_id} is already "
                f"{application.cover_letter_status.value}",
            )
        self._debit(ActivityType.COVER_LETTER_GENERATION, resource_id=application_id)
        if not self.records.queue_cover_letter(application_id):
            raise RuntimeError(f"Cover letter for {application_id} was queued concurrently")
        return self.jobs.create_job(
            PipelineJobCreate(
                job_type=JobType.COVER_LETTER,
                payload={"company_name": application.company_name},
                target_id=application_id,
            ),
        )

    def _analysis_payload(self, analysis_id: str) -> dict[str, Any]:
        analysis = self.records.get_analysis(analysis_id)
        if analysis is None:
            raise RuntimeError(f"Analysis not found: {analysis_id}")
        payload: dict[str, Any] = {"analysis_id": analysis_id}
        company = analysis.job.get("company") or analysis.job.get("company_name")
        if isinstance(company, str) and company:
            payload["company_name"] = company
        return payload

    def _debit(self, activity: ActivityType, *, resource_id: str) -> int:
        balance = self.ledger.debit(
            cost=activity_cost(activity),
            activity_type=activity,
            description=ACTIVITY_DESCRIPTIONS[activity],
            resource_id=resource_id,
        )
        logger.info("Admitted %s (%s); balance=%d", activity.value, resource_id, balance)
        return balance
