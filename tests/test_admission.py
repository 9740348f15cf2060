from __future__ import annotations

import allure
import pytest

from resume_forge.errors import InsufficientBalanceError
from resume_forge.ledger.models import ActivityType
from resume_forge.ledger.repository import LedgerRepository
from resume_forge.pipeline.models import JobStatus, JobType
from resume_forge.pipeline.repository import PipelineJobRepository
from resume_forge.records.models import (
    AnalysisCreate,
    ApplicationCreate,
    MatchAnalysis,
    PrepGuideStatus,
)
from resume_forge.records.repository import RecordsRepository
from resume_forge.storage.database import Database, UserContext
from resume_forge.tasks.admission import AdmissionService
from resume_forge.tasks.models import TaskType, TrackedTaskStatus
from resume_forge.tasks.repository import TaskRepository

pytestmark = [
    allure.epic("Token Ledger"),
    allure.feature("Admission Control"),
]


def _analysis(database: Database, context: UserContext) -> str:
    record = RecordsRepository(database, context=context).create_analysis(
        AnalysisCreate(
            job={"title": "Backend Engineer", "company": "Acme"},
            resume={"summary": "Python developer"},
            match_analysis=MatchAnalysis(),
            ats_score=55,
        ),
    )
    return record.analysis_id


def test_analyze_debits_then_creates_a_queued_task(
    database: Database,
    context: UserContext,
) -> None:
    service = AdmissionService(database, context=context)

    task = service.analyze(job={"company": "Acme"}, resume={"summary": "x"})

    assert task.status == TrackedTaskStatus.QUEUED
    assert task.task_type == TaskType.ANALYZE_RESUME.value
    ledger = LedgerRepository(database, context=context)
    assert ledger.get_balance() == 90
    [activity] = ledger.list_activities(limit=5)
    assert activity.activity_type == ActivityType.GAP_ANALYSIS.value
    assert activity.resource_id == task.task_id
    assert PipelineJobRepository(database, context=context).list_jobs() == []


def test_rejected_admission_leaves_no_task_or_job(
    database: Database,
) -> None:
    poor = UserContext(user_id="user-poor")
    database.ensure_user(poor, initial_balance=5)
    service = AdmissionService(database, context=poor)

    with pytest.raises(InsufficientBalanceError, match="Balance: 5, Required: 10"):
        service.analyze(job={"company": "Acme"}, resume={"summary": "x"})

    assert TaskRepository(database, context=poor).list_tasks() == []
    assert PipelineJobRepository(database, context=poor).list_jobs() == []
    assert LedgerRepository(database, context=poor).get_balance() == 5


def test_optimize_and_add_skill_create_paired_jobs(
    database: Database,
    context: UserContext,
) -> None:
    analysis_id = _analysis(database, context)
    service = AdmissionService(database, context=context)

    optimize = service.optimize(analysis_id)
    add_skill = service.add_skill(analysis_id, [" Rust ", ""])

    listed = PipelineJobRepository(database, context=context).list_jobs()
    jobs = {job.tracked_task_id: job for job in listed}
    assert jobs[optimize.task_id].job_type == JobType.OPTIMIZE_RESUME
    assert jobs[add_skill.task_id].job_type == JobType.ADD_SKILL
    assert jobs[add_skill.task_id].status == JobStatus.PENDING
    assert jobs[add_skill.task_id].target_id == analysis_id
    assert add_skill.payload == {
        "analysis_id": analysis_id,
        "company_name": "Acme",
        "skills": ["Rust"],
    }
    assert optimize.subject == "Acme"
    assert LedgerRepository(database, context=context).get_balance() == 70


def test_add_skill_requires_a_skill_and_an_analysis(
    database: Database,
    context: UserContext,
) -> None:
    service = AdmissionService(database, context=context)

    with pytest.raises(ValueError, match="At least one skill"):
        service.add_skill("missing", ["  "])
    with pytest.raises(RuntimeError, match="Analysis not found"):
        service.optimize("missing")

    assert LedgerRepository(database, context=context).get_balance() == 100


def test_prep_guide_debits_forty_and_queues_the_application(
    database: Database,
    context: UserContext,
) -> None:
    records = RecordsRepository(database, context=context)
    application = records.create_application(
        ApplicationCreate(company_name="Acme", job_title="SRE", job_description="Keep it up."),
    )
    service = AdmissionService(database, context=context)

    job = service.prep_guide(application.application_id)

    assert job.job_type == JobType.PREP_GUIDE
    assert job.target_id == application.application_id
    assert job.tracked_task_id is None
    assert LedgerRepository(database, context=context).get_balance() == 60
    stored = records.get_application(application.application_id)
    assert stored is not None
    assert stored.prep_status == PrepGuideStatus.QUEUED

    with pytest.raises(RuntimeError, match="already queued"):
        service.prep_guide(application.application_id)
    assert LedgerRepository(database, context=context).get_balance() == 60

    second = records.create_application(
        ApplicationCreate(company_name="Globex", job_title="SRE", job_description="On call."),
    )
    third = records.create_application(
        ApplicationCreate(company_name="Initech", job_title="SRE", job_description="TPS."),
    )
    service.prep_guide(second.application_id)
    with pytest.raises(InsufficientBalanceError, match="Balance: 20, Required: 40"):
        service.prep_guide(third.application_id)

    assert len(PipelineJobRepository(database, context=context).list_jobs()) == 2
    untouched = records.get_application(third.application_id)
    assert untouched is not None
    assert untouched.prep_status == PrepGuideStatus.IDLE


def test_in_flight_guide_and_letter_are_not_admitted_twice(
    database: Database,
    context: UserContext,
) -> None:
    records = RecordsRepository(database, context=context)
    application = records.create_application(
        ApplicationCreate(company_name="Acme", job_title="SRE", job_description="Keep it up."),
    )
    service = AdmissionService(database, context=context)
    service.prep_guide(application.application_id)
    service.cover_letter(application.application_id)
    assert records.start_prep_guide(application.application_id)

    with pytest.raises(RuntimeError, match="already generating"):
        service.prep_guide(application.application_id)
    with pytest.raises(RuntimeError, match="already queued"):
        service.cover_letter(application.application_id)

    assert LedgerRepository(database, context=context).get_balance() == 45
    assert len(PipelineJobRepository(database, context=context).list_jobs()) == 2

    assert records.cancel_prep_guide(application.application_id)
    service.prep_guide(application.application_id)
    assert LedgerRepository(database, context=context).get_balance() == 5


@pytest.mark.parametrize(
    ("flow", "required"),
    [
        ("optimize", 15),
        ("add_skill", 15),
    ],
)
def test_rejected_analysis_flows_leave_no_task_or_job(
    database: Database,
    flow: str,
    required: int,
) -> None:
    poor = UserContext(user_id="user-poor")
    database.ensure_user(poor, initial_balance=5)
    analysis_id = _analysis(database, poor)
    service = AdmissionService(database, context=poor)

    with pytest.raises(InsufficientBalanceError, match=f"Balance: 5, Required: {required}"):
        if flow == "optimize":
            service.optimize(analysis_id)
        else:
            service.add_skill(analysis_id, ["Rust"])

    assert TaskRepository(database, context=poor).list_tasks() == []
    assert PipelineJobRepository(database, context=poor).list_jobs() == []
    assert LedgerRepository(database, context=poor).get_balance() == 5
    assert LedgerRepository(database, context=poor).list_activities(limit=5) == []
