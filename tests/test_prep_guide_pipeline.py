from __future__ import annotations

import threading

import allure
import pytest
from conftest import make_invoker, replying

from resume_forge.ai.providers import ChatRequest, ProviderError
from resume_forge.errors import CancelledByUser, StageFailure
from resume_forge.pipeline.cancellation import CancellationToken
from resume_forge.pipeline.cover_letter import CoverLetterGenerator
from resume_forge.pipeline.prep_guide import SECTION_NAMES, PrepGuidePipeline
from resume_forge.records.models import (
    ApplicationCreate,
    CoverLetterStatus,
    PrepGuideStatus,
)
from resume_forge.records.repository import RecordsRepository
from resume_forge.storage.database import Database, UserContext

pytestmark = [
    allure.epic("Generation Pipeline"),
    allure.feature("Interview Prep Guide"),
]


class CountingResponder:
    """Answers every call with a numbered section; ``hook`` runs before answer ``n``."""

    def __init__(self, hooks: dict[int, object] | None = None) -> None:
        self.calls = 0
        self.hooks = hooks or {}
        self._lock = threading.Lock()

    def __call__(self, request: ChatRequest) -> str:
        with self._lock:
            self.calls += 1
            number = self.calls
        hook = self.hooks.get(number)
        if callable(hook):
            hook()
        return replying({"part": number})(request)


def _application(database: Database, context: UserContext, *, queued: bool = True) -> str:
    records = RecordsRepository(database, context=context)
    application = records.create_application(
        ApplicationCreate(
            company_name="Acme",
            job_title="Staff Engineer",
            job_description="Build reliable systems.",
        ),
    )
    if queued:
        assert records.queue_prep_guide(application.application_id)
        assert records.queue_cover_letter(application.application_id)
    return application.application_id


def test_full_run_writes_all_sections_and_completes(
    database: Database,
    context: UserContext,
) -> None:
    application_id = _application(database, context)
    invoker = make_invoker(replying({"section": "generic"}), replying({"section": "research"}))
    pipeline = PrepGuidePipeline(database, invoker)

    view = pipeline.run(application_id, context=context)

    assert view.prep_status == PrepGuideStatus.COMPLETED
    assert view.prep_progress == 100
    assert view.prep_current_step == "Complete"
    assert view.prep_completed_at is not None
    assert set(view.prep_sections) == set(SECTION_NAMES)
    assert len(SECTION_NAMES) == 7
    assert view.prep_sections["company_intelligence"] == {"section": "research"}
    assert view.prep_sections["strategy"] == {"section": "generic"}
    assert len(invoker.primary.requests) == 6
    assert invoker.fallback is not None
    assert len(invoker.fallback.requests) == 1


def test_cancel_mid_pipeline_keeps_written_sections(
    database: Database,
    context: UserContext,
) -> None:
    application_id = _application(database, context)
    records = RecordsRepository(database, context=context)
    responder = CountingResponder({3: lambda: records.cancel_prep_guide(application_id)})
    pipeline = PrepGuidePipeline(database, make_invoker(responder))

    with pytest.raises(CancelledByUser):
        pipeline.run(application_id, context=context)

    view = records.get_application(application_id)
    assert view is not None
    assert view.prep_status == PrepGuideStatus.CANCELLED
    assert set(view.prep_sections) == {"company_intelligence", "role_analysis", "technical_prep"}
    assert "interview_questions" not in view.prep_sections
    assert "strategy" not in view.prep_sections
    assert view.prep_completed_at is None
    assert responder.calls == 3


def test_local_cancel_before_first_stage_makes_no_calls(
    database: Database,
    context: UserContext,
) -> None:
    application_id = _application(database, context)
    responder = CountingResponder()
    token = CancellationToken()
    token.cancel("Stopped by worker shutdown")

    with pytest.raises(CancelledByUser, match="Stopped by worker shutdown"):
        PrepGuidePipeline(database, make_invoker(responder)).run(
            application_id,
            context=context,
            token=token,
        )

    view = RecordsRepository(database, context=context).get_application(application_id)
    assert view is not None
    assert view.prep_status == PrepGuideStatus.CANCELLED
    assert view.prep_sections == {}
    assert responder.calls == 0


def test_stage_failure_names_the_stage(database: Database, context: UserContext) -> None:
    application_id = _application(database, context)

    def _fail_role_analysis() -> None:
        raise ProviderError("fake", "boom")

    responder = CountingResponder({2: _fail_role_analysis})
    pipeline = PrepGuidePipeline(database, make_invoker(responder))

    with pytest.raises(StageFailure) as excinfo:
        pipeline.run(application_id, context=context)

    assert str(excinfo.value) == "Role analysis failed: All AI providers failed: fake: boom"
    view = RecordsRepository(database, context=context).get_application(application_id)
    assert view is not None
    assert view.prep_status == PrepGuideStatus.FAILED
    assert view.prep_error == str(excinfo.value)
    assert set(view.prep_sections) == {"company_intelligence"}


def test_restart_discards_previous_sections(database: Database, context: UserContext) -> None:
    application_id = _application(database, context)
    records = RecordsRepository(database, context=context)
    records.write_prep_section(application_id, "stale_section", {"old": True})

    PrepGuidePipeline(database, make_invoker(replying({"fresh": True}))).run(
        application_id,
        context=context,
    )

    view = records.get_application(application_id)
    assert view is not None
    assert "stale_section" not in view.prep_sections


def test_unknown_application_is_rejected(database: Database, context: UserContext) -> None:
    pipeline = PrepGuidePipeline(database, make_invoker(replying({})))

    with pytest.raises(RuntimeError, match="Application not found"):
        pipeline.run("missing", context=context)


def test_guide_cancelled_while_queued_is_never_started(
    database: Database,
    context: UserContext,
) -> None:
    application_id = _application(database, context)
    records = RecordsRepository(database, context=context)
    records.write_prep_section(application_id, "company_intelligence", {"kept": True})
    assert records.cancel_prep_guide(application_id)
    responder = CountingResponder()

    with pytest.raises(CancelledByUser, match="cancelled before it started"):
        PrepGuidePipeline(database, make_invoker(responder)).run(application_id, context=context)

    view = records.get_application(application_id)
    assert view is not None
    assert view.prep_status == PrepGuideStatus.CANCELLED
    assert view.prep_started_at is None
    assert view.prep_sections == {"company_intelligence": {"kept": True}}
    assert responder.calls == 0


def test_guide_that_was_never_queued_is_rejected(
    database: Database,
    context: UserContext,
) -> None:
    application_id = _application(database, context, queued=False)
    responder = CountingResponder()

    with pytest.raises(RuntimeError, match="is not queued"):
        PrepGuidePipeline(database, make_invoker(responder)).run(application_id, context=context)

    view = RecordsRepository(database, context=context).get_application(application_id)
    assert view is not None
    assert view.prep_status == PrepGuideStatus.IDLE
    assert responder.calls == 0


def test_guide_stopped_during_last_stage_is_not_completed(
    database: Database,
    context: UserContext,
) -> None:
    application_id = _application(database, context)
    records = RecordsRepository(database, context=context)
    responder = CountingResponder(
        {6: lambda: records.fail_prep_guide(application_id, error="Stopped by operator")},
    )

    with pytest.raises(CancelledByUser):
        PrepGuidePipeline(database, make_invoker(responder)).run(application_id, context=context)

    view = records.get_application(application_id)
    assert view is not None
    assert view.prep_status == PrepGuideStatus.FAILED
    assert view.prep_error == "Stopped by operator"
    assert view.prep_completed_at is None
    assert view.prep_progress == 75


def test_store_error_marks_the_guide_failed(
    database: Database,
    context: UserContext,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    application_id = _application(database, context)

    def _disk_full(self, application_id: str, name: str, content: object) -> None:
        raise OSError("disk I/O error")

    monkeypatch.setattr(RecordsRepository, "write_prep_section", _disk_full)

    with pytest.raises(OSError, match="disk I/O error"):
        PrepGuidePipeline(database, make_invoker(replying({}))).run(
            application_id,
            context=context,
        )

    view = RecordsRepository(database, context=context).get_application(application_id)
    assert view is not None
    assert view.prep_status == PrepGuideStatus.FAILED
    assert view.prep_error == "disk I/O error"


@allure.feature("Cover Letter")
def test_cover_letter_is_plain_text(database: Database, context: UserContext) -> None:
    application_id = _application(database, context)
    invoker = make_invoker(replying("```markdown\nDear Acme team,\n\nHire me.\n```"))

    text = CoverLetterGenerator(database, invoker).run(application_id, context=context)

    assert text == "Dear Acme team,\n\nHire me."
    [request] = invoker.primary.requests
    assert request.json_mode is False
    assert request.temperature == 0.7
    view = RecordsRepository(database, context=context).get_application(application_id)
    assert view is not None
    assert view.cover_letter_status == CoverLetterStatus.COMPLETED
    assert view.cover_letter_text == text


@allure.feature("Cover Letter")
def test_cover_letter_failure_is_recorded(database: Database, context: UserContext) -> None:
    application_id = _application(database, context)

    def _fail(_: ChatRequest) -> str:
        raise ProviderError("fake", "HTTP 500: boom")

    with pytest.raises(StageFailure):
        CoverLetterGenerator(database, make_invoker(_fail)).run(application_id, context=context)

    view = RecordsRepository(database, context=context).get_application(application_id)
    assert view is not None
    assert view.cover_letter_status == CoverLetterStatus.FAILED
    assert view.cover_letter_error == (
        "Cover letter failed: All AI providers failed: fake: HTTP 500: boom"
    )


@allure.feature("Cover Letter")
def test_cover_letter_that_was_never_queued_is_rejected(
    database: Database,
    context: UserContext,
) -> None:
    application_id = _application(database, context, queued=False)
    invoker = make_invoker(replying("Dear Acme team,"))

    with pytest.raises(RuntimeError, match="is not queued"):
        CoverLetterGenerator(database, invoker).run(application_id, context=context)

    assert invoker.primary.requests == []
    view = RecordsRepository(database, context=context).get_application(application_id)
    assert view is not None
    assert view.cover_letter_status == CoverLetterStatus.IDLE
