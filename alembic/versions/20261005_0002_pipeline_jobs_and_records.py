"""Add pipeline jobs and the analysis/application target records."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261005_0002"
down_revision = "20261001_0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "pipeline_jobs",
        sa.Column("job_id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), server_default="default_user", nullable=False),
        sa.Column("job_type", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("payload_json", sa.Text(), nullable=False),
        sa.Column("tracked_task_id", sa.String(), nullable=True),
        sa.Column("target_id", sa.String(), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.user_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("job_id"),
    )
    op.create_index("ix_pipeline_jobs_user_id", "pipeline_jobs", ["user_id"], unique=False)
    op.create_index("ix_pipeline_jobs_job_type", "pipeline_jobs", ["job_type"], unique=False)
    op.create_index("ix_pipeline_jobs_status", "pipeline_jobs", ["status"], unique=False)
    op.create_index(
        "ix_pipeline_jobs_tracked_task_id",
        "pipeline_jobs",
        ["tracked_task_id"],
        unique=False,
    )
    op.create_index("ix_pipeline_jobs_target_id", "pipeline_jobs", ["target_id"], unique=False)
    op.create_index(
        "idx_pipeline_jobs_scope",
        "pipeline_jobs",
        ["user_id", "status", "created_at"],
        unique=False,
    )

    op.create_table(
        "analysis_records",
        sa.Column("analysis_id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), server_default="default_user", nullable=False),
        sa.Column("job_json", sa.Text(), nullable=False),
        sa.Column("resume_json", sa.Text(), nullable=False),
        sa.Column("match_analysis_json", sa.Text(), nullable=False),
        sa.Column("ats_score", sa.Integer(), nullable=False),
        sa.Column("draft_resume_json", sa.Text(), nullable=True),
        sa.Column("draft_changes_json", sa.Text(), nullable=True),
        sa.Column("draft_match_analysis_json", sa.Text(), nullable=True),
        sa.Column("draft_ats_score", sa.Integer(), nullable=True),
        sa.Column("baseline_ats_score", sa.Integer(), nullable=True),
        sa.Column("baseline_total_skills", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.user_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("analysis_id"),
    )
    op.create_index(
        "ix_analysis_records_user_id",
        "analysis_records",
        ["user_id"],
        unique=False,
    )

    op.create_table(
        "application_records",
        sa.Column("application_id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), server_default="default_user", nullable=False),
        sa.Column("company_name", sa.String(), nullable=False),
        sa.Column("job_title", sa.String(), nullable=False),
        sa.Column("job_description", sa.Text(), nullable=False),
        sa.Column("analysis_id", sa.String(), nullable=True),
        sa.Column("prep_status", sa.String(), nullable=False, server_default="idle"),
        sa.Column("prep_progress", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("prep_current_step", sa.String(), nullable=True),
        sa.Column("prep_error", sa.Text(), nullable=True),
        sa.Column("prep_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("prep_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cover_letter_status", sa.String(), nullable=False, server_default="idle"),
        sa.Column("cover_letter_text", sa.Text(), nullable=True),
        sa.Column("cover_letter_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.user_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("application_id"),
    )
    op.create_index(
        "ix_application_records_user_id",
        "application_records",
        ["user_id"],
        unique=False,
    )
    op.create_index(
        "ix_application_records_prep_status",
        "application_records",
        ["prep_status"],
        unique=False,
    )

    op.create_table(
        "prep_guide_sections",
        sa.Column("application_id", sa.String(), nullable=False),
        sa.Column("section_name", sa.String(), nullable=False),
        sa.Column("content_json", sa.Text(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["application_id"],
            ["application_records.application_id"],
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("application_id", "section_name", name="pk_prep_guide_sections"),
    )


def downgrade() -> None:
    op.drop_table("prep_guide_sections")
    op.drop_table("application_records")
    op.drop_table("analysis_records")
    op.drop_table("pipeline_jobs")
