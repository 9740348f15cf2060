"""Six-stage interview-prep-guide generation with progressive section writes."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, NoReturn

from resume_forge.ai import prompts
from resume_forge.ai.invoker import AiInvoker
from resume_forge.errors import CancelledByUser, StageFailure, describe_failure
from resume_forge.pipeline.cancellation import CancellationToken
from resume_forge.records.models import PREP_GUIDE_STOP_STATUSES, ApplicationView
from resume_forge.records.repository import RecordsRepository
from resume_forge.storage.database import Database, UserContext

logger = logging.getLogger(__name__)

START_PROGRESS = 5
FINAL_PROGRESS = 95


@dataclass(frozen=True, slots=True)
class PrepStage:
    name: str
    section: str
    step: str
    done_progress: int
    prompt: str
    research: bool = False


SEQUENTIAL_STAGES: tuple[PrepStage, ...] = (
    PrepStage(
        name="Company research",
        section="company_intelligence",
        step="Researching company...",
        done_progress=15,
        prompt=prompts.COMPANY_RESEARCH_PROMPT,
        research=True,
    ),
    PrepStage(
        name="Role analysis",
        section="role_analysis",
        step="Analyzing role requirements...",
        done_progress=30,
        prompt=prompts.ROLE_ANALYSIS_PROMPT,
    ),
    PrepStage(
        name="Technical prep",
        section="technical_prep",
        step="Preparing technical topics...",
        done_progress=45,
        prompt=prompts.TECHNICAL_PREP_PROMPT,
    ),
    PrepStage(
        name="Behavioral framework",
        section="behavioral_framework",
        step="Building behavioral framework...",
        done_progress=60,
        prompt=prompts.BEHAVIORAL_FRAMEWORK_PROMPT,
    ),
    PrepStage(
        name="Story mapping",
        section="story_mapping",
        step="Mapping your experience to stories...",
        done_progress=75,
        prompt=prompts.STORY_MAPPING_PROMPT,
    ),
)

FINAL_STAGE_NAME = "Questions and strategy"
FINAL_STAGE_STEP = "Generating questions and strategy..."
PARALLEL_SECTIONS: tuple[tuple[str, str], ...] = (
    ("interview_questions", prompts.INTERVIEW_QUESTIONS_PROMPT),
    ("strategy", prompts.STRATEGY_PROMPT),
)
FINALIZE_STEP = "Finalizing guide..."

SECTION_NAMES = tuple(stage.section for stage in SEQUENTIAL_STAGES) + tuple(
    section for section, _ in PARALLEL_SECTIONS
)


class PrepGuidePipeline:
    """Writes each section to the application as soon as it is generated.

    Between stages the pipeline checks its cancellation token, which also
    polls the application's ``prep_status``. On cancellation it stops
    without a completed write and keeps the sections written so far. Any
    other failure marks the guide failed with a stage-qualified message.
    """

    def __init__(
        self,
        database: Database,
        invoker: AiInvoker,
        *,
        cancel_poll_seconds: float = 0.0,
    ) -> None:
        self.database = database
        self.invoker = invoker
        self.cancel_poll_seconds = cancel_poll_seconds

    def run(
        self,
        application_id: str,
        *,
        context: UserContext,
        payload: dict[str, Any] | None = None,
        token: CancellationToken | None = None,
    ) -> ApplicationView:
        records = RecordsRepository(self.database, context=context)
        if not records.start_prep_guide(application_id):
            self._not_started(records, application_id)
        application = records.get_application(application_id)
        if application is None:
            raise RuntimeError(f"Application not found: {application_id}")

        stop = CancellationToken(
            poll=lambda: records.get_prep_status(application_id) in _STOP_OR_GONE,
            poll_interval_seconds=self.cancel_poll_seconds,
            parent=token,
        )
        values = self._prompt_values(records, application, payload or {})

        try:
            self._run_stages(records, application_id, values, stop)
            if not records.complete_prep_guide(application_id):
                raise CancelledByUser("Prep guide was stopped before it completed")
        except CancelledByUser:
            records.cancel_prep_guide(application_id)
            logger.info("Prep guide for %s cancelled; partial sections kept", application_id)
            raise
        except StageFailure as exc:
            records.fail_prep_guide(application_id, error=str(exc))
            logger.warning("Prep guide for %s failed: %s", application_id, exc)
            raise
        except Exception as exc:
            records.fail_prep_guide(application_id, error=describe_failure(exc))
            logger.exception("Prep guide for %s failed unexpectedly", application_id)
            raise

        logger.info("Prep guide for %s completed", application_id)
        final = records.get_application(application_id)
        if final is None:
            raise RuntimeError(f"Application not found: {application_id}")
        return final

    def _not_started(self, records: RecordsRepository, application_id: str) -> NoReturn:
        status = records.get_prep_status(application_id)
        if status is None:
            raise RuntimeError(f"Application not found: {application_id}")
        if status in PREP_GUIDE_STOP_STATUSES:
            logger.info("Prep guide for %s is %s; skipping", application_id, status.value)
            raise CancelledByUser(f"Prep guide was {status.value} before it started")
        raise RuntimeError(f"Prep guide for {application_id} is not queued (status={status.value})")

    def _run_stages(
        self,
        records: RecordsRepository,
        application_id: str,
        values: dict[str, Any],
        stop: CancellationToken,
    ) -> None:
        self._advance(
            records,
            application_id,
            progress=START_PROGRESS,
            step=SEQUENTIAL_STAGES[0].step,
        )
        for index, stage in enumerate(SEQUENTIAL_STAGES):
            stop.raise_if_cancelled()
            content = self._generate(stage.name, stage.prompt, values, research=stage.research)
            records.write_prep_section(application_id, stage.section, content)
            next_step = (
                SEQUENTIAL_STAGES[index + 1].step
                if index + 1 < len(SEQUENTIAL_STAGES)
                else FINAL_STAGE_STEP
            )
            self._advance(
                records,
                application_id,
                progress=stage.done_progress,
                step=next_step,
            )
            logger.info("Prep guide %s: %s done", application_id, stage.name)
            stop.raise_if_cancelled()

        with ThreadPoolExecutor(max_workers=len(PARALLEL_SECTIONS)) as pool:
            futures = {
                section: pool.submit(self._generate, FINAL_STAGE_NAME, prompt, values)
                for section, prompt in PARALLEL_SECTIONS
            }
            results = {section: future.result() for section, future in futures.items()}
        for section, content in results.items():
            records.write_prep_section(application_id, section, content)
        self._advance(records, application_id, progress=FINAL_PROGRESS, step=FINALIZE_STEP)
        stop.raise_if_cancelled()

    def _advance(
        self,
        records: RecordsRepository,
        application_id: str,
        *,
        progress: int,
        step: str,
    ) -> None:
        if not records.advance_prep_progress(application_id, progress=progress, step=step):
            raise CancelledByUser("Prep guide is no longer generating")

    def _generate(
        self,
        stage_name: str,
        template: str,
        values: dict[str, Any],
        *,
        research: bool = False,
    ) -> dict[str, Any]:
        user_prompt = prompts.render(template, **values)
        try:
            if research:
                return self.invoker.research(prompts.INTERVIEW_COACH_SYSTEM, user_prompt)
            return self.invoker.invoke_json(prompts.INTERVIEW_COACH_SYSTEM, user_prompt)
        except Exception as exc:  # noqa: BLE001
            raise StageFailure(stage_name, exc) from exc

    def _prompt_values(
        self,
        records: RecordsRepository,
        application: ApplicationView,
        payload: dict[str, Any],
    ) -> dict[str, Any]:
        resume = payload.get("resume")
        if not isinstance(resume, dict) and application.analysis_id:
            analysis = records.get_analysis(application.analysis_id)
            resume = analysis.current_resume if analysis is not None else None
        return {
            "company": application.company_name,
            "job_title": application.job_title,
            "job_description": application.job_description,
            "resume": resume if isinstance(resume, dict) else {},
        }


_STOP_OR_GONE = (*PREP_GUIDE_STOP_STATUSES, None)
