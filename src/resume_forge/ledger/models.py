"""Token ledger models and the per-activity cost table."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class ActivityType(str, Enum):
    """Billable (and purchase) activity kinds recorded in the ledger."""

    RESUME_PARSING = "resume_parsing"
    JOB_EXTRACTION = "job_extraction"
    GAP_ANALYSIS = "gap_analysis"
    ATS_SCORE_CALCULATION = "ats_score_calculation"
    SKILL_INCORPORATION = "skill_incorporation"
    RESUME_OPTIMIZED = "resume_optimized"
    COVER_LETTER_GENERATION = "cover_letter_generation"
    COMPANY_RESEARCH = "company_research"
    INTERVIEW_PREP_GENERATION = "interview_prep_generation"
    TOKEN_PURCHASE = "token_purchase"


ACTIVITY_COSTS: dict[ActivityType, int] = {
    ActivityType.RESUME_PARSING: 5,
    ActivityType.JOB_EXTRACTION: 3,
    ActivityType.GAP_ANALYSIS: 10,
    ActivityType.ATS_SCORE_CALCULATION: 8,
    ActivityType.SKILL_INCORPORATION: 15,
    ActivityType.RESUME_OPTIMIZED: 15,
    ActivityType.COVER_LETTER_GENERATION: 15,
    ActivityType.COMPANY_RESEARCH: 15,
    ActivityType.INTERVIEW_PREP_GENERATION: 40,
    ActivityType.TOKEN_PURCHASE: 0,
}


def activity_cost(activity_type: ActivityType) -> int:
    return ACTIVITY_COSTS.get(activity_type, 0)


@dataclass(slots=True)
class LedgerActivityView:
    """One immutable balance movement."""

    activity_id: str
    user_id: str
    activity_type: str
    description: str
    tokens_used: int
    token_balance_after: int
    resource_id: str | None
    external_ref: str | None
    status: str
    ai_provider: str
    created_at: datetime


@dataclass(slots=True)
class AccountBalance:
    user_id: str
    token_balance: int
    total_tokens_used: int
    total_tokens_purchased: int


@dataclass(slots=True)
class CreditResult:
    """Outcome of a credit; ``applied`` is False for a duplicate delivery."""

    balance: int
    applied: bool
