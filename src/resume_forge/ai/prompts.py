"""Prompt templates for each generation step."""

from __future__ import annotations

import json
from typing import Any

_JSON_RULES = """
Respond with a single JSON object only. No prose before or after it.
"""

RESUME_ANALYST_SYSTEM = """\
You are an expert ATS (applicant tracking system) analyst and technical recruiter.
You compare a candidate resume against a job description and report skill gaps
honestly. Never invent experience the resume does not show.
"""

ANALYZE_PROMPT = (
    """\
Compare the resume with the job description.

Job:
{job}

Resume:
{resume}

Return JSON with keys:
- matchedSkills: [{{skill, importance, confidence}}] skills clearly present
- partialMatches: [{{skill, importance, confidence}}] related or weaker evidence
- missingSkills: [{{skill, importance, confidence}}] required but absent
- keywordDensity: 0-100, how well resume wording covers job keywords
- experienceMatch: 0-100, how well seniority and years match
importance is one of critical, high, medium, low.
"""
    + _JSON_RULES
)

RESUME_WRITER_SYSTEM = """\
You are a senior resume writer. You rewrite resumes for ATS compatibility while
keeping every statement truthful to the source resume.
"""

OPTIMIZE_PROMPT = (
    """\
Rewrite the resume to target the job below.

Job:
{job}

Resume:
{resume}

Current skill-gap analysis:
{analysis}

Return JSON with keys:
- resume: the full rewritten resume in the same structure as the input
- changes: [{{section, before, after, reason}}] every edit you made
- matchAnalysis: the skill-gap analysis of the rewritten resume, same shape as the input
"""
    + _JSON_RULES
)

ADD_SKILL_PROMPT = (
    """\
The candidate confirmed they have the following skills: {skills}.
Incorporate them into the resume where they fit naturally (summary, skills
section, and relevant experience bullets). Do not change anything else.

Job:
{job}

Resume:
{resume}

Return JSON with keys:
- resume: the full updated resume
- changes: [{{section, before, after, reason}}]
- matchAnalysis: the skill-gap analysis of the updated resume
"""
    + _JSON_RULES
)

INTERVIEW_COACH_SYSTEM = """\
You are an interview coach preparing a candidate for a specific role at a
specific company. Be concrete and specific to this company and role.
"""

COMPANY_RESEARCH_PROMPT = (
    """\
Research {company} for a candidate interviewing for the role "{job_title}".

Return JSON with keys: overview, products, culture, recentNews, interviewProcess.
"""
    + _JSON_RULES
)

ROLE_ANALYSIS_PROMPT = (
    """\
Analyse the role "{job_title}" at {company}.

Job description:
{job_description}

Return JSON with keys: responsibilities, mustHaveSkills, niceToHaveSkills,
successMetrics, seniority.
"""
    + _JSON_RULES
)

TECHNICAL_PREP_PROMPT = (
    """\
Build a technical preparation plan for the role "{job_title}" at {company}.

Job description:
{job_description}

Candidate resume:
{resume}

Return JSON with keys: topics [{{topic, why, resources}}], practiceProblems, systemDesign.
"""
    + _JSON_RULES
)

BEHAVIORAL_FRAMEWORK_PROMPT = (
    """\
Describe the behavioural interview framework a candidate should use for the
role "{job_title}" at {company}, tied to the company values.

Return JSON with keys: values, competencies, starTips.
"""
    + _JSON_RULES
)

STORY_MAPPING_PROMPT = (
    """\
Map the candidate's experience to STAR stories for the role "{job_title}" at {company}.

Candidate resume:
{resume}

Job description:
{job_description}

Return JSON with key stories: [{{title, situation, task, action, result, competencies}}].
"""
    + _JSON_RULES
)

INTERVIEW_QUESTIONS_PROMPT = (
    """\
List the interview questions the candidate is most likely to face for the role
"{job_title}" at {company}.

Job description:
{job_description}

Return JSON with key questions: [{{question, category, suggestedApproach}}].
"""
    + _JSON_RULES
)

STRATEGY_PROMPT = (
    """\
Write an interview-day strategy for the role "{job_title}" at {company}:
positioning, questions to ask the interviewers, and a 30-60-90 day plan.

Return JSON with keys: positioning, questionsToAsk, thirtySixtyNinety.
"""
    + _JSON_RULES
)

COVER_LETTER_SYSTEM = """\
You are a professional career writer. You write concise, specific cover letters.
"""

COVER_LETTER_PROMPT = """\
Write a cover letter for the role "{job_title}" at {company}.

Job description:
{job_description}

Candidate resume:
{resume}

Three to four short paragraphs. Plain text, no placeholders.
"""


def render(template: str, **values: Any) -> str:
    """Format a template; dict and list values are embedded as indented JSON."""

    rendered: dict[str, Any] = {}
    for key, value in values.items():
        if isinstance(value, dict | list):
            rendered[key] = json.dumps(value, ensure_ascii=False, indent=2)
        else:
            rendered[key] = value
    return template.format(**rendered)
