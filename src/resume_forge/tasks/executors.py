"""Generation routines for tracked task types."""

from __future__ import annotations

import logging
from typing import Any

from resume_forge.ai import prompts
from resume_forge.errors import StructuringFailure
from resume_forge.records.models import (
    AnalysisCreate,
    AnalysisView,
    DraftWrite,
    MatchAnalysis,
)
from resume_forge.scoring.calibrator import (
    apply_skill_addition,
    calculate_score,
    capture_baseline,
    inject_added_skills,
)
from resume_forge.tasks.models import TaskType
from resume_forge.tasks.runner import ExecutionContext, Executor

logger = logging.getLogger(__name__)


def analyze_resume(ctx: ExecutionContext) -> str:
    """Gap analysis of a resume against a job; creates the analysis record."""

    job = _require_dict(ctx.task.payload, "job")
    resume = _require_dict(ctx.task.payload, "resume")

    ctx.checkpoint(20, "Analyzing skills gap...")
    raw = ctx.invoker.invoke_json(
        prompts.RESUME_ANALYST_SYSTEM,
        prompts.render(prompts.ANALYZE_PROMPT, job=job, resume=resume),
    )

    ctx.checkpoint(40, "Extracting skill matches...")
    analysis = MatchAnalysis.from_dict(raw)

    ctx.checkpoint(70, "Calculating ATS score...")
    score = calculate_score(analysis)

    ctx.checkpoint(90, "Saving analysis...")
    record = ctx.records.create_analysis(
        AnalysisCreate(
            job=job,
            resume=resume,
            match_analysis=analysis,
            ats_score=score,
            analysis_id=ctx.task.payload.get("analysis_id"),
        ),
    )
    logger.info("Analysis %s scored %d", record.analysis_id, score)
    return record.analysis_id


def optimize_resume(ctx: ExecutionContext) -> str:
    """Full rewrite of the resume; the first run fixes the calibration baseline."""

    analysis = _load_analysis(ctx)

    ctx.checkpoint(20, "Optimizing resume...")
    raw = ctx.invoker.invoke_json(
        prompts.RESUME_WRITER_SYSTEM,
        prompts.render(
            prompts.OPTIMIZE_PROMPT,
            job=analysis.job,
            resume=analysis.current_resume,
            analysis=analysis.current_match_analysis.to_dict(),
        ),
    )
    resume, changes, optimized = _parse_rewrite(raw, fallback=analysis.current_match_analysis)
    score = calculate_score(optimized)
    if score <= analysis.current_score:
        score = min(100, analysis.current_score + 1)

    ctx.checkpoint(80, "Saving optimized resume...")
    ctx.records.save_draft(
        analysis.analysis_id,
        DraftWrite(resume=resume, changes=changes, match_analysis=optimized, ats_score=score),
    )
    ctx.records.capture_baseline(analysis.analysis_id, capture_baseline(score, optimized))
    return analysis.analysis_id


def add_skill(ctx: ExecutionContext) -> str:
    """Insert user-confirmed skills; the score rises per the calibration rule."""

    analysis = _load_analysis(ctx)
    skills = [
        str(skill).strip() for skill in ctx.task.payload.get("skills") or [] if str(skill).strip()
    ]
    if not skills:
        raise ValueError("No skills to add were given.")

    ctx.checkpoint(20, "Adding skills to resume...")
    baseline_score = analysis.baseline_ats_score
    baseline_total = analysis.baseline_total_skills
    if baseline_score is None or baseline_total is None:
        baseline = capture_baseline(analysis.current_score, analysis.current_match_analysis)
        ctx.records.capture_baseline(analysis.analysis_id, baseline)
        baseline_score, baseline_total = baseline.score, baseline.total_skills

    raw = ctx.invoker.invoke_json(
        prompts.RESUME_WRITER_SYSTEM,
        prompts.render(
            prompts.ADD_SKILL_PROMPT,
            skills=", ".join(skills),
            job=analysis.job,
            resume=analysis.current_resume,
        ),
    )
    resume, changes, updated = _parse_rewrite(raw, fallback=analysis.current_match_analysis)
    updated = inject_added_skills(updated, skills)
    score = apply_skill_addition(
        analysis.current_score,
        baseline_score,
        baseline_total,
        len(skills),
    )

    ctx.checkpoint(90, "Saving updated resume...")
    ctx.records.save_draft(
        analysis.analysis_id,
        DraftWrite(resume=resume, changes=changes, match_analysis=updated, ats_score=score),
    )
    logger.info(
        "Added %d skills to analysis %s: score %d -> %d",
        len(skills),
        analysis.analysis_id,
        analysis.current_score,
        score,
    )
    return analysis.analysis_id


def default_executors() -> dict[str, Executor]:
    return {
        TaskType.ANALYZE_RESUME.value: analyze_resume,
        TaskType.OPTIMIZE_RESUME.value: optimize_resume,
        TaskType.ADD_SKILL.value: add_skill,
    }


def _load_analysis(ctx: ExecutionContext) -> AnalysisView:
    analysis_id = ctx.task.payload.get("analysis_id")
    if not isinstance(analysis_id, str) or not analysis_id:
        raise ValueError("Task payload has no analysis_id.")
    analysis = ctx.records.get_analysis(analysis_id)
    if analysis is None:
        raise ValueError(f"Analysis not found: {analysis_id}")
    return analysis


def _parse_rewrite(
    raw: dict[str, Any],
    *,
    fallback: MatchAnalysis,
) -> tuple[dict[str, Any], list[dict[str, Any]], MatchAnalysis]:
    resume = raw.get("resume")
    if not isinstance(resume, dict):
        raise StructuringFailure("Rewrite response has no resume object.")
    changes_raw = raw.get("changes")
    changes = (
        [item for item in changes_raw if isinstance(item, dict)]
        if isinstance(changes_raw, list)
        else []
    )
    match_raw = raw.get("matchAnalysis", raw.get("match_analysis"))
    analysis = MatchAnalysis.from_dict(match_raw) if isinstance(match_raw, dict) else fallback
    return resume, changes, analysis


def _require_dict(payload: dict[str, Any], key: str) -> dict[str, Any]:
    value = payload.get(key)
    if not isinstance(value, dict) or not value:
        raise ValueError(f"Task payload is missing {key!r}.")
    return value
