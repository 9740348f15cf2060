"""Single-stage cover-letter generation into the application record."""

from __future__ import annotations

import logging
from typing import Any

from resume_forge.ai import prompts
from resume_forge.ai.invoker import AiInvoker, InvokeOptions
from resume_forge.errors import CancelledByUser, StageFailure
from resume_forge.pipeline.cancellation import CancellationToken
from resume_forge.records.repository import RecordsRepository
from resume_forge.storage.database import Database, UserContext

logger = logging.getLogger(__name__)

STAGE_NAME = "Cover letter"


class CoverLetterGenerator:
    def __init__(self, database: Database, invoker: AiInvoker) -> None:
        self.database = database
        self.invoker = invoker

    def run(
        self,
        application_id: str,
        *,
        context: UserContext,
        payload: dict[str, Any] | None = None,
        token: CancellationToken | None = None,
    ) -> str:
        records = RecordsRepository(self.database, context=context)
        application = records.get_application(application_id)
        if application is None:
            raise RuntimeError(f"Application not found: {application_id}")
        if not records.start_cover_letter(application_id):
            raise RuntimeError(
                f"Cover letter for {application_id} is not queued "
                f"(status={application.cover_letter_status.value})",
            )

        resume = (payload or {}).get("resume")
        if not isinstance(resume, dict) and application.analysis_id:
            analysis = records.get_analysis(application.analysis_id)
            resume = analysis.current_resume if analysis is not None else None

        try:
            text = self.invoker.invoke(
                prompts.COVER_LETTER_SYSTEM,
                prompts.render(
                    prompts.COVER_LETTER_PROMPT,
                    company=application.company_name,
                    job_title=application.job_title,
                    job_description=application.job_description,
                    resume=resume if isinstance(resume, dict) else {},
                ),
                InvokeOptions(json_mode=False, temperature=0.7),
            )
        except Exception as exc:  # noqa: BLE001
            failure = StageFailure(STAGE_NAME, exc)
            records.fail_cover_letter(application_id, error=str(failure))
            raise failure from exc

        if token is not None and token.cancelled:
            records.fail_cover_letter(application_id, error=token.reason)
            raise CancelledByUser(token.reason)

        if not records.complete_cover_letter(application_id, text=text.strip()):
            raise CancelledByUser("Cover letter was stopped before it completed")
        logger.info("Cover letter for %s generated", application_id)
        return text.strip()
