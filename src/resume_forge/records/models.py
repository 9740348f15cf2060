"""Target-record models: resume analyses and job applications."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class SkillImportance(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


IMPORTANT_TIERS = frozenset({SkillImportance.CRITICAL.value, SkillImportance.HIGH.value})


@dataclass(slots=True)
class SkillEntry:
    """One skill in a match analysis bucket."""

    skill: str
    importance: str = SkillImportance.MEDIUM.value
    confidence: float = 0.0
    user_has: bool | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def is_important(self) -> bool:
        return self.importance in IMPORTANT_TIERS

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> SkillEntry:
        known = {"skill", "name", "importance", "confidence", "userHas", "user_has"}
        importance = str(raw.get("importance") or SkillImportance.MEDIUM.value).lower()
        user_has = raw.get("user_has", raw.get("userHas"))
        return cls(
            skill=str(raw.get("skill") or raw.get("name") or ""),
            importance=importance,
            confidence=float(raw.get("confidence") or 0),
            user_has=bool(user_has) if user_has is not None else None,
            extra={key: value for key, value in raw.items() if key not in known},
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = dict(self.extra)
        payload.update(
            {
                "skill": self.skill,
                "importance": self.importance,
                "confidence": self.confidence,
            },
        )
        if self.user_has is not None:
            payload["user_has"] = self.user_has
        return payload


@dataclass(slots=True)
class MatchAnalysis:
    """Skill-gap analysis between a resume and a job description."""

    matched_skills: list[SkillEntry] = field(default_factory=list)
    partial_matches: list[SkillEntry] = field(default_factory=list)
    missing_skills: list[SkillEntry] = field(default_factory=list)
    keyword_density: float = 0.0
    experience_match: float = 0.0

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> MatchAnalysis:
        """Accept both the stored snake_case shape and the camelCase AI shape."""

        experience = raw.get("experience_match", raw.get("experienceMatch"))
        if isinstance(experience, dict):
            experience = experience.get("match")
        return cls(
            matched_skills=_skills(raw.get("matched_skills", raw.get("matchedSkills"))),
            partial_matches=_skills(raw.get("partial_matches", raw.get("partialMatches"))),
            missing_skills=_skills(raw.get("missing_skills", raw.get("missingSkills"))),
            keyword_density=_number(raw.get("keyword_density", raw.get("keywordDensity"))),
            experience_match=_number(experience),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "matched_skills": [entry.to_dict() for entry in self.matched_skills],
            "partial_matches": [entry.to_dict() for entry in self.partial_matches],
            "missing_skills": [entry.to_dict() for entry in self.missing_skills],
            "keyword_density": self.keyword_density,
            "experience_match": self.experience_match,
        }


class PrepGuideStatus(str, Enum):
    IDLE = "idle"
    QUEUED = "queued"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


PREP_GUIDE_STOP_STATUSES = frozenset({PrepGuideStatus.CANCELLED, PrepGuideStatus.FAILED})
PREP_GUIDE_RESTARTABLE = (
    PrepGuideStatus.IDLE,
    PrepGuideStatus.COMPLETED,
    PrepGuideStatus.FAILED,
    PrepGuideStatus.CANCELLED,
)


class CoverLetterStatus(str, Enum):
    IDLE = "idle"
    QUEUED = "queued"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"


COVER_LETTER_RESTARTABLE = (
    CoverLetterStatus.IDLE,
    CoverLetterStatus.COMPLETED,
    CoverLetterStatus.FAILED,
)


@dataclass(slots=True)
class AnalysisCreate:
    job: dict[str, Any]
    resume: dict[str, Any]
    match_analysis: MatchAnalysis
    ats_score: int
    analysis_id: str | None = None


@dataclass(slots=True)
class AnalysisView:
    analysis_id: str
    user_id: str
    job: dict[str, Any]
    resume: dict[str, Any]
    match_analysis: MatchAnalysis
    ats_score: int
    draft_resume: dict[str, Any] | None
    draft_changes: list[dict[str, Any]]
    draft_match_analysis: MatchAnalysis | None
    draft_ats_score: int | None
    baseline_ats_score: int | None
    baseline_total_skills: int | None
    created_at: datetime
    updated_at: datetime

    @property
    def current_score(self) -> int:
        return self.draft_ats_score if self.draft_ats_score is not None else self.ats_score

    @property
    def current_match_analysis(self) -> MatchAnalysis:
        return self.draft_match_analysis or self.match_analysis

    @property
    def current_resume(self) -> dict[str, Any]:
        return self.draft_resume or self.resume


@dataclass(slots=True)
class DraftWrite:
    resume: dict[str, Any]
    changes: list[dict[str, Any]]
    match_analysis: MatchAnalysis
    ats_score: int


@dataclass(slots=True)
class ApplicationCreate:
    company_name: str
    job_title: str
    job_description: str
    analysis_id: str | None = None
    application_id: str | None = None


@dataclass(slots=True)
class ApplicationView:
    application_id: str
    user_id: str
    company_name: str
    job_title: str
    job_description: str
    analysis_id: str | None
    prep_status: PrepGuideStatus
    prep_progress: int
    prep_current_step: str | None
    prep_error: str | None
    prep_sections: dict[str, Any]
    prep_started_at: datetime | None
    prep_completed_at: datetime | None
    cover_letter_status: CoverLetterStatus
    cover_letter_text: str | None
    cover_letter_error: str | None
    created_at: datetime
    updated_at: datetime


def _skills(raw: object) -> list[SkillEntry]:
    if not isinstance(raw, list):
        return []
    entries: list[SkillEntry] = []
    for item in raw:
        if isinstance(item, dict):
            entries.append(SkillEntry.from_dict(item))
        elif isinstance(item, str):
            entries.append(SkillEntry(skill=item))
    return entries


def _number(raw: object) -> float:
    if isinstance(raw, bool):
        return 0.0
    if isinstance(raw, int | float):
        return float(raw)
    if isinstance(raw, str):
        try:
            return float(raw)
        except ValueError:
            return 0.0
    return 0.0
