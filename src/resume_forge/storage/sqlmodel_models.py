"""SQLModel ORM tables for resume-forge storage."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, PrimaryKeyConstraint, Text
from sqlmodel import Field, SQLModel

DEFAULT_USER_ID = "default_user"


class AppUser(SQLModel, table=True):
    __tablename__ = "users"  # type: ignore[bad-override]

    user_id: str = Field(primary_key=True, index=True)
    display_name: str = Field(index=True)
    token_balance: int = Field(default=0)
    total_tokens_used: int = Field(default=0)
    total_tokens_purchased: int = Field(default=0)
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class LedgerActivity(SQLModel, table=True):
    __tablename__ = "ledger_activities"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_ledger_activities_user_time", "user_id", "created_at"),)

    activity_id: str = Field(primary_key=True)
    user_id: str = Field(
        default=DEFAULT_USER_ID,
        sa_column=Column(
            ForeignKey("users.user_id", ondelete="CASCADE"),
            nullable=False,
            server_default=DEFAULT_USER_ID,
            index=True,
        ),
    )
    activity_type: str = Field(index=True)
    description: str = Field(sa_column=Column(Text, nullable=False))
    tokens_used: int
    token_balance_after: int
    resource_id: str | None = Field(default=None, index=True)
    external_ref: str | None = Field(default=None, unique=True)
    status: str = Field(default="completed")
    ai_provider: str = Field(default="none")
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class TrackedTask(SQLModel, table=True):
    __tablename__ = "tracked_tasks"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_tracked_tasks_scope", "user_id", "status", "created_at"),)

    task_id: str = Field(primary_key=True)
    user_id: str = Field(
        default=DEFAULT_USER_ID,
        sa_column=Column(
            ForeignKey("users.user_id", ondelete="CASCADE"),
            nullable=False,
            server_default=DEFAULT_USER_ID,
            index=True,
        ),
    )
    task_type: str = Field(index=True)
    status: str = Field(index=True)
    progress: int = Field(default=0)
    stage: str = Field(default="Pending...")
    payload_json: str = Field(sa_column=Column(Text, nullable=False))
    result_id: str | None = None
    error: str | None = Field(default=None, sa_column=Column(Text))
    claim_token: str | None = None
    executor_id: str | None = Field(default=None, index=True)
    started_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    finished_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class TrackedTaskEvent(SQLModel, table=True):
    __tablename__ = "tracked_task_events"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_tracked_task_events_task_time", "task_id", "created_at"),)

    id: int | None = Field(default=None, primary_key=True)
    task_id: str = Field(
        sa_column=Column(
            ForeignKey("tracked_tasks.task_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    user_id: str = Field(
        default=DEFAULT_USER_ID,
        sa_column=Column(
            ForeignKey("users.user_id", ondelete="CASCADE"),
            nullable=False,
            server_default=DEFAULT_USER_ID,
            index=True,
        ),
    )
    event_type: str = Field(index=True)
    status_from: str | None = Field(default=None, index=True)
    status_to: str | None = Field(default=None, index=True)
    details_json: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class PipelineJob(SQLModel, table=True):
    __tablename__ = "pipeline_jobs"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_pipeline_jobs_scope", "user_id", "status", "created_at"),)

    job_id: str = Field(primary_key=True)
    user_id: str = Field(
        default=DEFAULT_USER_ID,
        sa_column=Column(
            ForeignKey("users.user_id", ondelete="CASCADE"),
            nullable=False,
            server_default=DEFAULT_USER_ID,
            index=True,
        ),
    )
    job_type: str = Field(index=True)
    status: str = Field(index=True)
    payload_json: str = Field(sa_column=Column(Text, nullable=False))
    tracked_task_id: str | None = Field(default=None, index=True)
    target_id: str | None = Field(default=None, index=True)
    error: str | None = Field(default=None, sa_column=Column(Text))
    started_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    completed_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class AnalysisRecord(SQLModel, table=True):
    __tablename__ = "analysis_records"  # type: ignore[bad-override]

    analysis_id: str = Field(primary_key=True)
    user_id: str = Field(
        default=DEFAULT_USER_ID,
        sa_column=Column(
            ForeignKey("users.user_id", ondelete="CASCADE"),
            nullable=False,
            server_default=DEFAULT_USER_ID,
            index=True,
        ),
    )
    job_json: str = Field(sa_column=Column(Text, nullable=False))
    resume_json: str = Field(sa_column=Column(Text, nullable=False))
    match_analysis_json: str = Field(sa_column=Column(Text, nullable=False))
    ats_score: int
    draft_resume_json: str | None = Field(default=None, sa_column=Column(Text))
    draft_changes_json: str | None = Field(default=None, sa_column=Column(Text))
    draft_match_analysis_json: str | None = Field(default=None, sa_column=Column(Text))
    draft_ats_score: int | None = None
    baseline_ats_score: int | None = None
    baseline_total_skills: int | None = None
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class ApplicationRecord(SQLModel, table=True):
    __tablename__ = "application_records"  # type: ignore[bad-override]

    application_id: str = Field(primary_key=True)
    user_id: str = Field(
        default=DEFAULT_USER_ID,
        sa_column=Column(
            ForeignKey("users.user_id", ondelete="CASCADE"),
            nullable=False,
            server_default=DEFAULT_USER_ID,
            index=True,
        ),
    )
    company_name: str
    job_title: str
    job_description: str = Field(sa_column=Column(Text, nullable=False))
    analysis_id: str | None = None
    prep_status: str = Field(default="idle", index=True)
    prep_progress: int = Field(default=0)
    prep_current_step: str | None = None
    prep_error: str | None = Field(default=None, sa_column=Column(Text))
    prep_started_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True)),
    )
    prep_completed_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True)),
    )
    cover_letter_status: str = Field(default="idle")
    cover_letter_text: str | None = Field(default=None, sa_column=Column(Text))
    cover_letter_error: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class PrepGuideSection(SQLModel, table=True):
    __tablename__ = "prep_guide_sections"  # type: ignore[bad-override]
    __table_args__ = (
        PrimaryKeyConstraint("application_id", "section_name", name="pk_prep_guide_sections"),
    )

    application_id: str = Field(
        sa_column=Column(
            ForeignKey("application_records.application_id", ondelete="CASCADE"),
            nullable=False,
        ),
    )
    section_name: str
    content_json: str = Field(sa_column=Column(Text, nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
