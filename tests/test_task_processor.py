from __future__ import annotations

import allure
from conftest import failing, make_invoker, replying

from resume_forge.ai.invoker import AiInvoker
from resume_forge.ai.providers import ChatRequest
from resume_forge.notifications import Notification
from resume_forge.pipeline.models import JobStatus, JobType
from resume_forge.pipeline.prefect_flow import process_job
from resume_forge.pipeline.processor import TaskProcessor
from resume_forge.pipeline.repository import PipelineJobRepository
from resume_forge.records.models import (
    AnalysisCreate,
    ApplicationCreate,
    CoverLetterStatus,
    MatchAnalysis,
    PrepGuideStatus,
)
from resume_forge.records.repository import RecordsRepository
from resume_forge.storage.database import Database, UserContext
from resume_forge.tasks.admission import AdmissionService
from resume_forge.tasks.executors import default_executors
from resume_forge.tasks.models import TrackedTaskStatus
from resume_forge.tasks.repository import TaskRepository
from resume_forge.tasks.runner import TaskRunner

pytestmark = [
    allure.epic("Generation Pipeline"),
    allure.feature("Task Processor"),
]

REWRITE = {
    "resume": {"summary": "Optimized"},
    "matchAnalysis": {
        "matchedSkills": [{"skill": "Python", "importance": "critical"}],
        "missingSkills": [],
        "keywordDensity": 90,
        "experienceMatch": 90,
    },
}


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: list[Notification] = []

    def send(self, notification: Notification) -> None:
        self.sent.append(notification)


def _processor(
    database: Database,
    invoker: AiInvoker,
    notifier: RecordingNotifier | None = None,
) -> TaskProcessor:
    runner = TaskRunner(database, invoker, default_executors(), notifier=notifier)
    return TaskProcessor(database, invoker, runner, notifier=notifier)


def _application(database: Database, context: UserContext) -> str:
    return (
        RecordsRepository(database, context=context)
        .create_application(
            ApplicationCreate(company_name="Acme", job_title="SRE", job_description="Pager duty."),
        )
        .application_id
    )


def _analysis(database: Database, context: UserContext) -> str:
    return (
        RecordsRepository(database, context=context)
        .create_analysis(
            AnalysisCreate(
                job={"company": "Acme"},
                resume={"summary": "Python"},
                match_analysis=MatchAnalysis(),
                ats_score=40,
            ),
        )
        .analysis_id
    )


def test_prep_guide_job_completes_and_notifies(database: Database, context: UserContext) -> None:
    notifier = RecordingNotifier()
    processor = _processor(database, make_invoker(replying({"ok": True})), notifier)
    job = AdmissionService(database, context=context).prep_guide(_application(database, context))

    try:
        assert processor.on_job_created(job) == JobStatus.COMPLETED
        assert processor.on_job_created(job) is None
    finally:
        processor.shutdown()

    stored = PipelineJobRepository(database, context=context).get_job(job.job_id)
    assert stored is not None
    assert stored.status == JobStatus.COMPLETED
    assert stored.completed_at is not None
    [notice] = notifier.sent
    assert notice.title == "Interview Prep Guide Ready"
    assert notice.body == "Your interview prep guide is ready."


def test_attached_processor_runs_jobs_on_creation(
    database: Database,
    context: UserContext,
) -> None:
    processor = _processor(database, make_invoker(replying("Dear Acme,\nHire me.")))
    application_id = _application(database, context)
    processor.attach()

    job = AdmissionService(database, context=context).cover_letter(application_id)
    processor.shutdown(wait=True)

    stored = PipelineJobRepository(database, context=context).get_job(job.job_id)
    assert stored is not None
    assert stored.status == JobStatus.COMPLETED
    application = RecordsRepository(database, context=context).get_application(application_id)
    assert application is not None
    assert application.cover_letter_status == CoverLetterStatus.COMPLETED
    assert application.cover_letter_text == "Dear Acme,\nHire me."


def test_paired_job_executes_the_tracked_task(database: Database, context: UserContext) -> None:
    processor = _processor(database, make_invoker(replying(REWRITE)))
    task = AdmissionService(database, context=context).optimize(_analysis(database, context))
    [job] = PipelineJobRepository(database, context=context).list_jobs()

    try:
        assert job.job_type == JobType.OPTIMIZE_RESUME
        assert processor.on_job_created(job) == JobStatus.COMPLETED
    finally:
        processor.shutdown()

    stored = TaskRepository(database, context=context).get_task(task.task_id)
    assert stored is not None
    assert stored.status == TrackedTaskStatus.COMPLETED
    assert stored.executor_id == "pipeline-processor"


def test_task_claimed_by_a_picker_is_skipped(database: Database, context: UserContext) -> None:
    processor = _processor(database, make_invoker(replying(REWRITE)))
    task = AdmissionService(database, context=context).optimize(_analysis(database, context))
    [job] = PipelineJobRepository(database, context=context).list_jobs()
    assert TaskRepository(database, context=context).claim_task(task.task_id, executor_id="picker")

    try:
        assert processor.on_job_created(job) == JobStatus.SKIPPED
    finally:
        processor.shutdown()

    stored = PipelineJobRepository(database, context=context).get_job(job.job_id)
    assert stored is not None
    assert stored.status == JobStatus.SKIPPED
    assert stored.error == "Tracked task handled by another executor"


def test_deleted_tracked_task_skips_the_job(database: Database, context: UserContext) -> None:
    processor = _processor(database, make_invoker(replying(REWRITE)))
    task = AdmissionService(database, context=context).optimize(_analysis(database, context))
    [job] = PipelineJobRepository(database, context=context).list_jobs()
    assert TaskRepository(database, context=context).delete_task(task.task_id)

    try:
        assert processor.on_job_created(job) == JobStatus.SKIPPED
    finally:
        processor.shutdown()

    stored = PipelineJobRepository(database, context=context).get_job(job.job_id)
    assert stored is not None
    assert stored.error == "Tracked task no longer exists"


def test_failed_prep_guide_fails_the_job(database: Database, context: UserContext) -> None:
    processor = _processor(database, make_invoker(failing("HTTP 401: Unauthorized")))
    application_id = _application(database, context)
    job = AdmissionService(database, context=context).prep_guide(application_id)

    try:
        assert processor.on_job_created(job) == JobStatus.FAILED
    finally:
        processor.shutdown()

    stored = PipelineJobRepository(database, context=context).get_job(job.job_id)
    assert stored is not None
    assert stored.error == (
        "Company research failed: All AI providers failed: fake: HTTP 401: Unauthorized"
    )
    application = RecordsRepository(database, context=context).get_application(application_id)
    assert application is not None
    assert application.prep_status == PrepGuideStatus.FAILED


def test_cancel_job_stops_an_in_flight_prep_guide(
    database: Database,
    context: UserContext,
) -> None:
    holder: dict[str, TaskProcessor] = {}
    job_ids: list[str] = []

    def _cancel_on_first_call(request: ChatRequest) -> str:
        assert holder["processor"].cancel_job(job_ids[0])
        return replying({"ok": True})(request)

    processor = _processor(database, make_invoker(_cancel_on_first_call))
    holder["processor"] = processor
    application_id = _application(database, context)
    job = AdmissionService(database, context=context).prep_guide(application_id)
    job_ids.append(job.job_id)

    try:
        assert processor.on_job_created(job) == JobStatus.CANCELLED
        assert processor.cancel_job(job.job_id) is False
    finally:
        processor.shutdown()

    stored = PipelineJobRepository(database, context=context).get_job(job.job_id)
    assert stored is not None
    assert stored.status == JobStatus.CANCELLED
    application = RecordsRepository(database, context=context).get_application(application_id)
    assert application is not None
    assert application.prep_status == PrepGuideStatus.CANCELLED
    assert set(application.prep_sections) == {"company_intelligence"}


def test_run_pending_sweeps_oldest_first(database: Database, context: UserContext) -> None:
    processor = _processor(database, make_invoker(replying("Letter text")))
    admission = AdmissionService(database, context=context)
    first = admission.cover_letter(_application(database, context))
    second = admission.cover_letter(_application(database, context))

    try:
        results = processor.run_pending(context)
        assert processor.run_pending(context) == {}
    finally:
        processor.shutdown()

    assert list(results) == [first.job_id, second.job_id]
    assert set(results.values()) == {JobStatus.COMPLETED}


def test_prefect_task_body_delegates_to_the_processor(
    database: Database,
    context: UserContext,
) -> None:
    processor = _processor(database, make_invoker(replying("Letter text")))
    job = AdmissionService(database, context=context).cover_letter(_application(database, context))

    try:
        assert process_job.fn(processor=processor, job=job) == JobStatus.COMPLETED
    finally:
        processor.shutdown()


def test_prep_guide_cancelled_while_queued_is_never_generated(
    database: Database,
    context: UserContext,
) -> None:
    invoker = make_invoker(replying({"ok": True}))
    processor = _processor(database, invoker)
    application_id = _application(database, context)
    job = AdmissionService(database, context=context).prep_guide(application_id)
    records = RecordsRepository(database, context=context)
    assert records.cancel_prep_guide(application_id)

    try:
        assert processor.run_pending(context) == {job.job_id: JobStatus.CANCELLED}
    finally:
        processor.shutdown()

    assert invoker.primary.requests == []
    application = records.get_application(application_id)
    assert application is not None
    assert application.prep_status == PrepGuideStatus.CANCELLED
    assert application.prep_sections == {}
    stored = PipelineJobRepository(database, context=context).get_job(job.job_id)
    assert stored is not None
    assert stored.status == JobStatus.CANCELLED


def test_prep_guide_failed_elsewhere_mid_run_is_not_reported_ready(
    database: Database,
    context: UserContext,
) -> None:
    application_id = _application(database, context)
    records = RecordsRepository(database, context=context)
    calls: list[ChatRequest] = []

    def _fail_on_second_call(request: ChatRequest) -> str:
        calls.append(request)
        if len(calls) == 2:
            assert records.fail_prep_guide(application_id, error="Stopped by operator")
        return replying({"ok": True})(request)

    notifier = RecordingNotifier()
    processor = _processor(database, make_invoker(_fail_on_second_call), notifier)
    job = AdmissionService(database, context=context).prep_guide(application_id)

    try:
        assert processor.on_job_created(job) == JobStatus.CANCELLED
    finally:
        processor.shutdown()

    assert notifier.sent == []
    assert len(calls) == 2
    application = records.get_application(application_id)
    assert application is not None
    assert application.prep_status == PrepGuideStatus.FAILED
    assert application.prep_error == "Stopped by operator"
    assert application.prep_completed_at is None
