"""Target records: resume analyses and job applications."""

from __future__ import annotations

import json
import logging
from typing import Any
from uuid import uuid4

from sqlalchemy import delete as sa_delete
from sqlalchemy import func
from sqlalchemy import update as sa_update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlmodel import Session, col, select

from resume_forge.records.models import (
    COVER_LETTER_RESTARTABLE,
    PREP_GUIDE_RESTARTABLE,
    AnalysisCreate,
    AnalysisView,
    ApplicationCreate,
    ApplicationView,
    CoverLetterStatus,
    DraftWrite,
    MatchAnalysis,
    PrepGuideStatus,
)
from resume_forge.scoring.calibrator import SkillBaseline
from resume_forge.storage.common import (
    dump_json,
    load_json_dict,
    optional_utc,
    to_db_datetime,
    to_utc_aware_datetime,
    utc_now,
)
from resume_forge.storage.database import Database, UserContext
from resume_forge.storage.sqlmodel_models import (
    AnalysisRecord,
    ApplicationRecord,
    PrepGuideSection,
)

logger = logging.getLogger(__name__)

PREP_START_STEP = "Starting generation..."
PREP_COMPLETE_STEP = "Complete"


class RecordsRepository:
    """Target documents the generation jobs write into, scoped to one user."""

    def __init__(self, database: Database, *, context: UserContext) -> None:
        self.database = database
        self.engine = database.engine
        self.user_id = context.user_id

    # Analyses

    def create_analysis(self, payload: AnalysisCreate) -> AnalysisView:
        now = utc_now()
        with Session(self.engine) as session:
            row = AnalysisRecord(
                analysis_id=payload.analysis_id or str(uuid4()),
                user_id=self.user_id,
                job_json=dump_json(payload.job),
                resume_json=dump_json(payload.resume),
                match_analysis_json=dump_json(payload.match_analysis.to_dict()),
                ats_score=payload.ats_score,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_analysis_view(row)

    def get_analysis(self, analysis_id: str) -> AnalysisView | None:
        with Session(self.engine) as session:
            row = session.exec(
                select(AnalysisRecord).where(
                    AnalysisRecord.analysis_id == analysis_id,
                    AnalysisRecord.user_id == self.user_id,
                ),
            ).one_or_none()
        return _to_analysis_view(row) if row is not None else None

    def save_draft(self, analysis_id: str, draft: DraftWrite) -> None:
        now = utc_now()
        with Session(self.engine) as session:
            result = session.exec(
                sa_update(AnalysisRecord)
                .where(
                    col(AnalysisRecord.analysis_id) == analysis_id,
                    col(AnalysisRecord.user_id) == self.user_id,
                )
                .values(
                    draft_resume_json=dump_json(draft.resume),
                    draft_changes_json=json.dumps(draft.changes, ensure_ascii=False),
                    draft_match_analysis_json=dump_json(draft.match_analysis.to_dict()),
                    draft_ats_score=draft.ats_score,
                    updated_at=to_db_datetime(now),
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                raise RuntimeError(f"Analysis not found: {analysis_id}")
            session.commit()

    def capture_baseline(self, analysis_id: str, baseline: SkillBaseline) -> bool:
        """Store the calibration baseline unless one was captured already."""

        now = utc_now()
        with Session(self.engine) as session:
            result = session.exec(
                sa_update(AnalysisRecord)
                .where(
                    col(AnalysisRecord.analysis_id) == analysis_id,
                    col(AnalysisRecord.user_id) == self.user_id,
                    col(AnalysisRecord.baseline_ats_score).is_(None),
                )
                .values(
                    baseline_ats_score=baseline.score,
                    baseline_total_skills=baseline.total_skills,
                    updated_at=to_db_datetime(now),
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            session.commit()
            return True

    # Applications

    def create_application(self, payload: ApplicationCreate) -> ApplicationView:
        now = utc_now()
        with Session(self.engine) as session:
            row = ApplicationRecord(
                application_id=payload.application_id or str(uuid4()),
                user_id=self.user_id,
                company_name=payload.company_name,
                job_title=payload.job_title,
                job_description=payload.job_description,
                analysis_id=payload.analysis_id,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_application_view(row, sections={})

    def get_application(self, application_id: str) -> ApplicationView | None:
        with Session(self.engine) as session:
            row = session.exec(
                select(ApplicationRecord).where(
                    ApplicationRecord.application_id == application_id,
                    ApplicationRecord.user_id == self.user_id,
                ),
            ).one_or_none()
            if row is None:
                return None
            section_rows = session.exec(
                select(PrepGuideSection).where(
                    PrepGuideSection.application_id == application_id,
                ),
            ).all()
        sections = {item.section_name: json.loads(item.content_json) for item in section_rows}
        return _to_application_view(row, sections=sections)

    def queue_prep_guide(self, application_id: str) -> bool:
        """Queue a new run unless one is already queued or generating."""

        return self._update_application(
            application_id,
            only_status=PREP_GUIDE_RESTARTABLE,
            prep_status=PrepGuideStatus.QUEUED.value,
            prep_progress=0,
            prep_current_step=None,
            prep_error=None,
        )

    def start_prep_guide(self, application_id: str) -> bool:
        """Move a queued guide to generating and discard earlier sections.

        Returns ``False`` when the guide is no longer queued, for example
        because the user cancelled it before any worker picked it up.
        """

        now = utc_now()
        with Session(self.engine) as session:
            result = session.exec(
                sa_update(ApplicationRecord)
                .where(
                    *self._application(application_id),
                    col(ApplicationRecord.prep_status) == PrepGuideStatus.QUEUED.value,
                )
                .values(
                    prep_status=PrepGuideStatus.GENERATING.value,
                    prep_progress=0,
                    prep_current_step=PREP_START_STEP,
                    prep_error=None,
                    prep_started_at=to_db_datetime(now),
                    prep_completed_at=None,
                    updated_at=to_db_datetime(now),
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            session.exec(
                sa_delete(PrepGuideSection).where(
                    col(PrepGuideSection.application_id) == application_id,
                ),
            )
            session.commit()
            return True

    def write_prep_section(self, application_id: str, name: str, content: Any) -> None:
        """Upsert one guide section; visible to readers as soon as this returns."""

        now = to_db_datetime(utc_now())
        statement = sqlite_insert(PrepGuideSection.__table__).values(  # type: ignore[arg-type]
            application_id=application_id,
            section_name=name,
            content_json=json.dumps(content, ensure_ascii=False),
            updated_at=now,
        )
        statement = statement.on_conflict_do_update(
            index_elements=["application_id", "section_name"],
            set_={
                "content_json": statement.excluded.content_json,
                "updated_at": statement.excluded.updated_at,
            },
        )
        with Session(self.engine) as session:
            session.execute(statement)
            session.commit()

    def advance_prep_progress(self, application_id: str, *, progress: int, step: str) -> bool:
        """Move progress forward while generating; a lower value never wins."""

        bounded = max(0, min(100, progress))
        return self._update_application(
            application_id,
            only_status=(PrepGuideStatus.GENERATING,),
            prep_progress=func.max(col(ApplicationRecord.prep_progress), bounded),
            prep_current_step=step,
        )

    def complete_prep_guide(self, application_id: str) -> bool:
        return self._update_application(
            application_id,
            only_status=(PrepGuideStatus.GENERATING,),
            prep_status=PrepGuideStatus.COMPLETED.value,
            prep_progress=100,
            prep_current_step=PREP_COMPLETE_STEP,
            prep_completed_at=to_db_datetime(utc_now()),
        )

    def fail_prep_guide(self, application_id: str, *, error: str) -> bool:
        return self._update_application(
            application_id,
            only_status=(PrepGuideStatus.QUEUED, PrepGuideStatus.GENERATING),
            prep_status=PrepGuideStatus.FAILED.value,
            prep_error=error,
        )

    def cancel_prep_guide(self, application_id: str) -> bool:
        return self._update_application(
            application_id,
            only_status=(PrepGuideStatus.QUEUED, PrepGuideStatus.GENERATING),
            prep_status=PrepGuideStatus.CANCELLED.value,
        )

    def get_prep_status(self, application_id: str) -> PrepGuideStatus | None:
        with Session(self.engine) as session:
            status = session.exec(
                select(ApplicationRecord.prep_status).where(
                    ApplicationRecord.application_id == application_id,
                    ApplicationRecord.user_id == self.user_id,
                ),
            ).one_or_none()
        return PrepGuideStatus(status) if status is not None else None

    def queue_cover_letter(self, application_id: str) -> bool:
        return self._update_application(
            application_id,
            only_status_column="cover_letter_status",
            only_status=COVER_LETTER_RESTARTABLE,
            cover_letter_status=CoverLetterStatus.QUEUED.value,
            cover_letter_error=None,
        )

    def start_cover_letter(self, application_id: str) -> bool:
        return self._update_application(
            application_id,
            only_status_column="cover_letter_status",
            only_status=(CoverLetterStatus.QUEUED,),
            cover_letter_status=CoverLetterStatus.GENERATING.value,
            cover_letter_error=None,
        )

    def complete_cover_letter(self, application_id: str, *, text: str) -> bool:
        return self._update_application(
            application_id,
            only_status_column="cover_letter_status",
            only_status=(CoverLetterStatus.GENERATING,),
            cover_letter_status=CoverLetterStatus.COMPLETED.value,
            cover_letter_text=text,
        )

    def fail_cover_letter(self, application_id: str, *, error: str) -> bool:
        return self._update_application(
            application_id,
            only_status_column="cover_letter_status",
            only_status=(CoverLetterStatus.QUEUED, CoverLetterStatus.GENERATING),
            cover_letter_status=CoverLetterStatus.FAILED.value,
            cover_letter_error=error,
        )

    def _application(self, application_id: str) -> tuple[Any, ...]:
        return (
            col(ApplicationRecord.application_id) == application_id,
            col(ApplicationRecord.user_id) == self.user_id,
        )

    def _update_application(
        self,
        application_id: str,
        *,
        only_status: tuple[PrepGuideStatus | CoverLetterStatus, ...] | None = None,
        only_status_column: str = "prep_status",
        **values: Any,
    ) -> bool:
        conditions = list(self._application(application_id))
        if only_status is not None:
            column = col(getattr(ApplicationRecord, only_status_column))
            conditions.append(column.in_([status.value for status in only_status]))
        values["updated_at"] = to_db_datetime(utc_now())
        with Session(self.engine) as session:
            result = session.exec(
                sa_update(ApplicationRecord).where(*conditions).values(**values),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            session.commit()
            return True


def _to_analysis_view(row: AnalysisRecord) -> AnalysisView:
    draft_changes: list[dict[str, Any]] = []
    if row.draft_changes_json:
        parsed = json.loads(row.draft_changes_json)
        if isinstance(parsed, list):
            draft_changes = [item for item in parsed if isinstance(item, dict)]
    return AnalysisView(
        analysis_id=row.analysis_id,
        user_id=row.user_id,
        job=load_json_dict(row.job_json),
        resume=load_json_dict(row.resume_json),
        match_analysis=MatchAnalysis.from_dict(load_json_dict(row.match_analysis_json)),
        ats_score=row.ats_score,
        draft_resume=load_json_dict(row.draft_resume_json) if row.draft_resume_json else None,
        draft_changes=draft_changes,
        draft_match_analysis=(
            MatchAnalysis.from_dict(load_json_dict(row.draft_match_analysis_json))
            if row.draft_match_analysis_json
            else None
        ),
        draft_ats_score=row.draft_ats_score,
        baseline_ats_score=row.baseline_ats_score,
        baseline_total_skills=row.baseline_total_skills,
        created_at=to_utc_aware_datetime(row.created_at),
        updated_at=to_utc_aware_datetime(row.updated_at),
    )


def _to_application_view(row: ApplicationRecord, *, sections: dict[str, Any]) -> ApplicationView:
    return ApplicationView(
        application_id=row.application_id,
        user_id=row.user_id,
        company_name=row.company_name,
        job_title=row.job_title,
        job_description=row.job_description,
        analysis_id=row.analysis_id,
        prep_status=PrepGuideStatus(row.prep_status),
        prep_progress=row.prep_progress,
        prep_current_step=row.prep_current_step,
        prep_error=row.prep_error,
        prep_sections=sections,
        prep_started_at=optional_utc(row.prep_started_at),
        prep_completed_at=optional_utc(row.prep_completed_at),
        cover_letter_status=CoverLetterStatus(row.cover_letter_status),
        cover_letter_text=row.cover_letter_text,
        cover_letter_error=row.cover_letter_error,
        created_at=to_utc_aware_datetime(row.created_at),
        updated_at=to_utc_aware_datetime(row.updated_at),
    )
