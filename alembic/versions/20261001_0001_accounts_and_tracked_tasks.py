"""Create users, token ledger, and tracked task tables."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261001_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("display_name", sa.String(), nullable=False),
        sa.Column("token_balance", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_tokens_used", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "total_tokens_purchased",
            sa.Integer(),
            nullable=False,
            server_default=sa.text("0"),
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("user_id"),
        sa.CheckConstraint("token_balance >= 0", name="ck_users_token_balance_non_negative"),
    )
    op.create_index("ix_users_user_id", "users", ["user_id"], unique=False)
    op.create_index("ix_users_display_name", "users", ["display_name"], unique=False)

    op.create_table(
        "ledger_activities",
        sa.Column("activity_id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), server_default="default_user", nullable=False),
        sa.Column("activity_type", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("tokens_used", sa.Integer(), nullable=False),
        sa.Column("token_balance_after", sa.Integer(), nullable=False),
        sa.Column("resource_id", sa.String(), nullable=True),
        sa.Column("external_ref", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="completed"),
        sa.Column("ai_provider", sa.String(), nullable=False, server_default="none"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.user_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("activity_id"),
        sa.UniqueConstraint("external_ref", name="uq_ledger_activities_external_ref"),
    )
    op.create_index(
        "ix_ledger_activities_user_id",
        "ledger_activities",
        ["user_id"],
        unique=False,
    )
    op.create_index(
        "ix_ledger_activities_activity_type",
        "ledger_activities",
        ["activity_type"],
        unique=False,
    )
    op.create_index(
        "ix_ledger_activities_resource_id",
        "ledger_activities",
        ["resource_id"],
        unique=False,
    )
    op.create_index(
        "idx_ledger_activities_user_time",
        "ledger_activities",
        ["user_id", "created_at"],
        unique=False,
    )

    op.create_table(
        "tracked_tasks",
        sa.Column("task_id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), server_default="default_user", nullable=False),
        sa.Column("task_type", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("progress", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("stage", sa.String(), nullable=False, server_default="Pending..."),
        sa.Column("payload_json", sa.Text(), nullable=False),
        sa.Column("result_id", sa.String(), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("claim_token", sa.String(), nullable=True),
        sa.Column("executor_id", sa.String(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.user_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("task_id"),
        sa.CheckConstraint(
            "progress >= 0 AND progress <= 100",
            name="ck_tracked_tasks_progress_range",
        ),
    )
    op.create_index("ix_tracked_tasks_user_id", "tracked_tasks", ["user_id"], unique=False)
    op.create_index("ix_tracked_tasks_task_type", "tracked_tasks", ["task_type"], unique=False)
    op.create_index("ix_tracked_tasks_status", "tracked_tasks", ["status"], unique=False)
    op.create_index(
        "ix_tracked_tasks_executor_id",
        "tracked_tasks",
        ["executor_id"],
        unique=False,
    )
    op.create_index(
        "idx_tracked_tasks_scope",
        "tracked_tasks",
        ["user_id", "status", "created_at"],
        unique=False,
    )

    op.create_table(
        "tracked_task_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("task_id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), server_default="default_user", nullable=False),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("status_from", sa.String(), nullable=True),
        sa.Column("status_to", sa.String(), nullable=True),
        sa.Column("details_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["task_id"], ["tracked_tasks.task_id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.user_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_tracked_task_events_task_id",
        "tracked_task_events",
        ["task_id"],
        unique=False,
    )
    op.create_index(
        "ix_tracked_task_events_user_id",
        "tracked_task_events",
        ["user_id"],
        unique=False,
    )
    op.create_index(
        "ix_tracked_task_events_event_type",
        "tracked_task_events",
        ["event_type"],
        unique=False,
    )
    op.create_index(
        "idx_tracked_task_events_task_time",
        "tracked_task_events",
        ["task_id", "created_at"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_table("tracked_task_events")
    op.drop_table("tracked_tasks")
    op.drop_table("ledger_activities")
    op.drop_table("users")
