"""ATS-style match scoring and the monotonic skill-addition calibration."""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass, replace

from resume_forge.records.models import MatchAnalysis, SkillEntry, SkillImportance

SKILL_WEIGHT = 0.5
KEYWORD_WEIGHT = 0.2
EXPERIENCE_WEIGHT = 0.2
PARTIAL_CREDIT = 0.5
MAX_SCORE = 100
ADDED_SKILL_CONFIDENCE = 100.0


@dataclass(frozen=True, slots=True)
class SkillBaseline:
    """Score and open-gap count captured once, at the first optimization."""

    score: int
    total_skills: int


def calculate_score(analysis: MatchAnalysis) -> int:
    """Score a match analysis in [0, 100].

    Only critical and high importance skills count toward the skill figure:
    ``(matched + 0.5 * partial) / total * 100``. The result blends 50% of that,
    20% keyword density and 20% experience match, rounded half up.
    """

    matched = _important_count(analysis.matched_skills)
    partial = _important_count(analysis.partial_matches)
    missing = _important_count(analysis.missing_skills)
    total = matched + partial + missing
    skill_score = (matched + partial * PARTIAL_CREDIT) / total * 100 if total else 0.0

    blended = (
        skill_score * SKILL_WEIGHT
        + _clamp_float(analysis.keyword_density) * KEYWORD_WEIGHT
        + _clamp_float(analysis.experience_match) * EXPERIENCE_WEIGHT
    )
    return _clamp(math.floor(blended + 0.5))


def apply_skill_addition(
    current_score: int,
    baseline_score: int,
    baseline_total_skills: int,
    skills_added: int,
) -> int:
    """New score after adding ``skills_added`` skills.

    Each added skill earns an equal share of the gap that existed at the
    baseline. While a gap remains the result always rises by at least one point.
    """

    current = _clamp(current_score)
    baseline = _clamp(baseline_score)
    if skills_added <= 0:
        return current

    per_skill_gain = (
        (MAX_SCORE - baseline) / baseline_total_skills if baseline_total_skills > 0 else 0.0
    )
    new_score = _clamp(math.floor(current + per_skill_gain * skills_added))
    if baseline < MAX_SCORE and new_score <= current:
        return min(MAX_SCORE, current + 1)
    return max(new_score, current)


def capture_baseline(score: int, analysis: MatchAnalysis) -> SkillBaseline:
    return SkillBaseline(
        score=_clamp(score),
        total_skills=len(analysis.partial_matches) + len(analysis.missing_skills),
    )


def inject_added_skills(analysis: MatchAnalysis, skills: Iterable[str]) -> MatchAnalysis:
    """Move confirmed skills into the matched bucket.

    Matching is case-insensitive. A moved skill keeps its importance; a skill
    not present in any bucket enters as ``high``. Confidence becomes 100.
    """

    wanted = {skill.strip().lower(): skill.strip() for skill in skills if skill.strip()}
    if not wanted:
        return analysis

    partial = [entry for entry in analysis.partial_matches if _key(entry) not in wanted]
    missing = [entry for entry in analysis.missing_skills if _key(entry) not in wanted]
    moved = {
        _key(entry): entry
        for entry in (*analysis.partial_matches, *analysis.missing_skills)
        if _key(entry) in wanted
    }

    matched = list(analysis.matched_skills)
    matched_index = {_key(entry): position for position, entry in enumerate(matched)}
    for key, name in wanted.items():
        if key in matched_index:
            position = matched_index[key]
            matched[position] = replace(
                matched[position],
                confidence=ADDED_SKILL_CONFIDENCE,
                user_has=True,
            )
            continue
        source = moved.get(key)
        matched.append(
            SkillEntry(
                skill=source.skill if source else name,
                importance=source.importance if source else SkillImportance.HIGH.value,
                confidence=ADDED_SKILL_CONFIDENCE,
                user_has=True,
                extra=dict(source.extra) if source else {},
            ),
        )

    return replace(
        analysis,
        matched_skills=matched,
        partial_matches=partial,
        missing_skills=missing,
    )


def _important_count(entries: list[SkillEntry]) -> int:
    return sum(1 for entry in entries if entry.is_important)


def _key(entry: SkillEntry) -> str:
    return entry.skill.strip().lower()


def _clamp(value: float) -> int:
    return int(max(0, min(MAX_SCORE, value)))


def _clamp_float(value: float) -> float:
    return max(0.0, min(float(MAX_SCORE), value))
