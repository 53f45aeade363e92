"""Baseline migration - tenants, scheduling, intake, agent and job tables

Revision ID: 0001_baseline
Revises:
Create Date: 2026-10-18
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID


# revision identifiers, used by Alembic.
revision: str = "0001_baseline"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id() -> sa.Column:
    return sa.Column(
        "id", UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), nullable=False
    )


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False
    )


def _updated_at() -> sa.Column:
    return sa.Column(
        "updated_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False
    )


def _org_id(nullable: bool = False) -> sa.Column:
    return sa.Column("organization_id", UUID(as_uuid=True), nullable=nullable)


def _org_fk() -> sa.ForeignKeyConstraint:
    return sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="CASCADE")


def upgrade() -> None:
    """Create all tables."""
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")  # For gen_random_uuid()

    # ==========================================================================
    # Tenants and users
    # ==========================================================================
    op.create_table(
        "organizations",
        _id(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(100), nullable=False),
        sa.Column("timezone", sa.String(50), server_default=sa.text("'UTC'"), nullable=False),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug"),
    )
    op.create_table(
        "users",
        _id(),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("display_name", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=True),
        sa.Column("timezone", sa.String(50), server_default=sa.text("'UTC'"), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("token_version", sa.Integer(), server_default=sa.text("1"), nullable=False),
        _created_at(),
        sa.Column("last_login_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_table(
        "memberships",
        _id(),
        sa.Column("user_id", UUID(as_uuid=True), nullable=False),
        _org_id(),
        sa.Column("role", sa.String(50), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        _org_fk(),
    )
    op.create_index("ix_memberships_organization_id", "memberships", ["organization_id"])

    # ==========================================================================
    # Scheduling
    # ==========================================================================
    op.create_table(
        "scheduling_events",
        _id(),
        _org_id(),
        sa.Column("user_id", UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("start_time", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("end_time", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("participant_emails", JSONB(), server_default=sa.text("'[]'::jsonb"), nullable=False),
        sa.Column("status", sa.String(20), server_default=sa.text("'SCHEDULED'"), nullable=False),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id"),
        _org_fk(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("idx_events_user_start", "scheduling_events", ["user_id", "start_time"])
    op.create_index("idx_events_org", "scheduling_events", ["organization_id"])

    op.create_table(
        "availability_rules",
        _id(),
        _org_id(),
        sa.Column("user_id", UUID(as_uuid=True), nullable=False),
        sa.Column("day_of_week", sa.SmallInteger(), nullable=False),
        sa.Column("start_time", sa.String(5), nullable=False),
        sa.Column("end_time", sa.String(5), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("timezone", sa.String(50), server_default=sa.text("'UTC'"), nullable=False),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id"),
        _org_fk(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_availability_day_of_week"),
    )
    op.create_index("idx_availability_user_day", "availability_rules", ["user_id", "day_of_week"])

    op.create_table(
        "event_reminders",
        _id(),
        sa.Column("event_id", UUID(as_uuid=True), nullable=False),
        sa.Column("reminder_time", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("status", sa.String(20), server_default=sa.text("'PENDING'"), nullable=False),
        sa.Column("sent_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("retry_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["event_id"], ["scheduling_events.id"], ondelete="CASCADE"),
    )
    op.create_index("idx_reminders_status_time", "event_reminders", ["status", "reminder_time"])

    # ==========================================================================
    # Pipelines
    # ==========================================================================
    op.create_table(
        "pipelines",
        _id(),
        _org_id(),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("created_by_user_id", UUID(as_uuid=True), nullable=True),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id"),
        _org_fk(),
        sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index("idx_pipelines_org", "pipelines", ["organization_id", "name"])

    op.create_table(
        "pipeline_stages",
        _id(),
        sa.Column("pipeline_id", UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("order", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("color", sa.String(7), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["pipeline_id"], ["pipelines.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_pipeline_stages_pipeline_id", "pipeline_stages", ["pipeline_id"])

    op.create_table(
        "pipeline_items",
        _id(),
        sa.Column("pipeline_id", UUID(as_uuid=True), nullable=False),
        sa.Column("stage_id", UUID(as_uuid=True), nullable=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("priority", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("status", sa.String(20), server_default=sa.text("'NOT_STARTED'"), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("tags", JSONB(), server_default=sa.text("'[]'::jsonb"), nullable=False),
        sa.Column("assigned_to_user_id", UUID(as_uuid=True), nullable=True),
        sa.Column("progress", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("data", JSONB(), server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column("created_by_user_id", UUID(as_uuid=True), nullable=True),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["pipeline_id"], ["pipelines.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["stage_id"], ["pipeline_stages.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["assigned_to_user_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index("idx_pipeline_items_pipeline", "pipeline_items", ["pipeline_id", "stage_id"])

    # ==========================================================================
    # Intake, tasks and documents
    # ==========================================================================
    op.create_table(
        "intake_requests",
        _id(),
        _org_id(),
        sa.Column("source", sa.String(20), server_default=sa.text("'FORM'"), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("request_data", JSONB(), server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column("status", sa.String(20), server_default=sa.text("'NEW'"), nullable=False),
        sa.Column("priority", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("assigned_pipeline_id", UUID(as_uuid=True), nullable=True),
        sa.Column("ai_routing_meta", JSONB(), nullable=True),
        sa.Column("created_by_user_id", UUID(as_uuid=True), nullable=True),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id"),
        _org_fk(),
        sa.ForeignKeyConstraint(["assigned_pipeline_id"], ["pipelines.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index("idx_intake_org_status", "intake_requests", ["organization_id", "status"])
    op.create_index("idx_intake_org_priority", "intake_requests", ["organization_id", "priority"])

    op.create_table(
        "tasks",
        _id(),
        _org_id(),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("source", sa.String(20), server_default=sa.text("'API'"), nullable=False),
        sa.Column("status", sa.String(20), server_default=sa.text("'NEW'"), nullable=False),
        sa.Column("priority", sa.Integer(), server_default=sa.text("3"), nullable=False),
        sa.Column("pipeline_key", sa.String(100), nullable=True),
        sa.Column("stage_key", sa.String(100), nullable=True),
        sa.Column("tags", JSONB(), server_default=sa.text("'[]'::jsonb"), nullable=False),
        sa.Column("data", JSONB(), server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column("assigned_to_user_id", UUID(as_uuid=True), nullable=True),
        sa.Column("created_by_user_id", UUID(as_uuid=True), nullable=True),
        sa.Column("due_at", sa.TIMESTAMP(timezone=True), nullable=True),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id"),
        _org_fk(),
        sa.ForeignKeyConstraint(["assigned_to_user_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index("idx_tasks_org_status", "tasks", ["organization_id", "status"])

    op.create_table(
        "documents",
        _id(),
        _org_id(),
        sa.Column("uploaded_by_user_id", UUID(as_uuid=True), nullable=True),
        sa.Column("pipeline_id", UUID(as_uuid=True), nullable=True),
        sa.Column("file_name", sa.String(255), nullable=False),
        sa.Column("file_size", sa.BigInteger(), nullable=False),
        sa.Column("mime_type", sa.String(100), nullable=False),
        sa.Column("storage_key", sa.String(500), nullable=False),
        sa.Column("checksum_sha256", sa.String(64), nullable=False),
        sa.Column("status", sa.String(20), server_default=sa.text("'PENDING'"), nullable=False),
        sa.Column("title", sa.String(255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("tags", JSONB(), server_default=sa.text("'[]'::jsonb"), nullable=False),
        _created_at(),
        _updated_at(),
        sa.Column("deleted_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        _org_fk(),
        sa.ForeignKeyConstraint(["uploaded_by_user_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["pipeline_id"], ["pipelines.id"], ondelete="SET NULL"),
    )
    op.create_index("idx_documents_org_created", "documents", ["organization_id", "created_at"])

    # ==========================================================================
    # Agent decisions and logs
    # ==========================================================================
    op.create_table(
        "agent_decisions",
        _id(),
        _org_id(),
        sa.Column("task_id", sa.String(100), nullable=True),
        sa.Column("input_source", sa.String(20), nullable=False),
        sa.Column("decision_type", sa.String(30), nullable=False),
        sa.Column("status", sa.String(20), server_default=sa.text("'PENDING'"), nullable=False),
        sa.Column("confidence", sa.Float(), server_default=sa.text("0"), nullable=False),
        sa.Column("reasoning", sa.Text(), nullable=True),
        sa.Column("input_data", JSONB(), server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column("actions", JSONB(), server_default=sa.text("'[]'::jsonb"), nullable=False),
        sa.Column("result", JSONB(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("execution_time_ms", sa.Integer(), nullable=True),
        sa.Column("executed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("reviewed_by_user_id", UUID(as_uuid=True), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        _org_fk(),
        sa.ForeignKeyConstraint(["reviewed_by_user_id"], ["users.id"], ondelete="SET NULL"),
        sa.CheckConstraint("confidence >= 0 AND confidence <= 1", name="ck_decision_confidence"),
    )
    op.create_index("idx_decisions_org_created", "agent_decisions", ["organization_id", "created_at"])
    op.create_index("idx_decisions_org_status", "agent_decisions", ["organization_id", "status"])

    op.create_table(
        "agent_logs",
        _id(),
        _org_id(nullable=True),
        sa.Column("user_id", UUID(as_uuid=True), nullable=True),
        sa.Column("task_id", sa.String(100), nullable=True),
        sa.Column("level", sa.String(10), nullable=False),
        sa.Column("category", sa.String(20), nullable=False),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        sa.Column("metadata", JSONB(), nullable=True),
        sa.Column("error", JSONB(), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        _org_fk(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index("idx_agent_logs_org_created", "agent_logs", ["organization_id", "created_at"])
    op.create_index("idx_agent_logs_task", "agent_logs", ["task_id", "created_at"])

    # ==========================================================================
    # Background jobs
    # ==========================================================================
    op.create_table(
        "jobs",
        _id(),
        _org_id(),
        sa.Column("job_type", sa.String(50), nullable=False),
        sa.Column("payload", JSONB(), server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column("run_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("status", sa.String(20), server_default=sa.text("'pending'"), nullable=False),
        sa.Column("attempts", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("max_attempts", sa.Integer(), server_default=sa.text("3"), nullable=False),
        sa.Column("last_error", sa.Text(), nullable=True),
        _created_at(),
        sa.Column("completed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("idempotency_key", sa.String(255), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        _org_fk(),
    )
    op.create_index("idx_jobs_pending", "jobs", ["status", "run_at"])
    op.create_index("idx_jobs_org", "jobs", ["organization_id", "created_at"])
    op.create_index(
        "uq_job_idempotency",
        "jobs",
        ["idempotency_key"],
        unique=True,
        postgresql_where=sa.text("idempotency_key IS NOT NULL"),
    )


def downgrade() -> None:
    for table in (
        "jobs",
        "agent_logs",
        "agent_decisions",
        "documents",
        "tasks",
        "intake_requests",
        "pipeline_items",
        "pipeline_stages",
        "pipelines",
        "event_reminders",
        "availability_rules",
        "scheduling_events",
        "memberships",
        "users",
        "organizations",
    ):
        op.drop_table(table)
