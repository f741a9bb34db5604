"""initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000

Creates:
1. users (admins and applicant accounts)
2. applicants, schedule_slots and applicant_notifications
3. activity_logs
4. announcements and messages

schedule_slots.datetime_iso carries a unique index so two sessions can
never be booked for the same moment, even under concurrent requests.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_initial_schema"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

# Enum labels are the Python member names, as SQLAlchemy stores them
ENUMS = {
    "user_role": ("SUPER_ADMIN", "ADMIN", "APPLICANT"),
    "applicant_kind": ("TEACHER", "STUDENT"),
    "applicant_status": (
        "PENDING",
        "SUBMITTED",
        "REVIEWING",
        "INTERVIEW_SCHEDULED",
        "INTERVIEW_COMPLETED",
        "DEMO_SCHEDULED",
        "DEMO_COMPLETED",
        "ONBOARDING",
        "ARCHIVED",
        "REJECTED",
    ),
    "final_decision": ("APPROVED", "REJECTED"),
    "slot_kind": ("INTERVIEW", "DEMO"),
    "notification_type": ("PROGRESS", "SCHEDULE", "INFO"),
    "announcement_audience": ("ALL", "APPLICANTS", "STAFF"),
}


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def _base_columns() -> list[sa.Column]:
    """Primary key and timestamps (from BaseModel)."""
    return [
        sa.Column("id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    """Create all tables."""
    bind = op.get_bind()
    for name in ENUMS:
        _enum(name).create(bind, checkfirst=True)

    # Users
    op.create_table(
        "users",
        *_base_columns(),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.Text(), nullable=False),
        sa.Column("display_name", sa.String(length=200), nullable=False),
        sa.Column("role", _enum("user_role"), nullable=False),
        sa.Column("is_archived", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("archived_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("archived_by", sa.String(length=64), nullable=True),
        sa.Column("must_change_password", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)

    # Applicants
    op.create_table(
        "applicants",
        *_base_columns(),
        sa.Column("uid", postgresql.UUID(as_uuid=False), nullable=True),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=30), nullable=True),
        sa.Column("kind", _enum("applicant_kind"), nullable=False),
        sa.Column("position", sa.String(length=150), nullable=True),
        sa.Column("form_data", postgresql.JSON(), nullable=True),
        sa.Column("status", _enum("applicant_status"), nullable=False),
        sa.Column("status_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status_updated_by", sa.String(length=64), nullable=True),
        sa.Column("archived", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("archived_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("final_decision", _enum("final_decision"), nullable=True),
        sa.Column("final_decision_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("decision_reason", sa.Text(), nullable=True),
        sa.Column("deletion_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("interview", postgresql.JSON(), nullable=True),
        sa.Column("demo_teaching", postgresql.JSON(), nullable=True),
        sa.Column("documents", postgresql.JSON(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["uid"],
            ["users.id"],
            name="fk_applicants_uid",
            ondelete="SET NULL",
        ),
    )
    op.create_index("ix_applicants_status", "applicants", ["status"], unique=False)
    op.create_index("ix_applicants_email", "applicants", ["email"], unique=False)
    op.create_index("ix_applicants_uid", "applicants", ["uid"], unique=False)
    op.create_index("ix_applicants_deletion_date", "applicants", ["deletion_date"], unique=False)

    # Interview / demo schedule
    op.create_table(
        "schedule_slots",
        *_base_columns(),
        sa.Column("applicant_id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column("kind", _enum("slot_kind"), nullable=False),
        sa.Column("scheduled_date", sa.Date(), nullable=False),
        sa.Column("scheduled_time", sa.String(length=5), nullable=False),
        sa.Column("datetime_iso", sa.String(length=40), nullable=False),
        sa.Column("mode", sa.String(length=50), nullable=True),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("subject", sa.String(length=150), nullable=True),
        sa.Column("created_by", sa.String(length=64), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["applicant_id"],
            ["applicants.id"],
            name="fk_schedule_slots_applicant_id",
            ondelete="CASCADE",
        ),
    )
    op.create_index(
        "ux_schedule_slots_datetime_iso", "schedule_slots", ["datetime_iso"], unique=True
    )
    op.create_index(
        "ix_schedule_slots_applicant_id", "schedule_slots", ["applicant_id"], unique=False
    )

    # Applicant portal notifications
    op.create_table(
        "applicant_notifications",
        *_base_columns(),
        sa.Column("applicant_id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("type", _enum("notification_type"), nullable=False),
        sa.Column("category", sa.String(length=50), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("from_admin", sa.Boolean(), nullable=False, server_default="true"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["applicant_id"],
            ["applicants.id"],
            name="fk_applicant_notifications_applicant_id",
            ondelete="CASCADE",
        ),
    )
    op.create_index(
        "ix_applicant_notifications_applicant_id",
        "applicant_notifications",
        ["applicant_id"],
        unique=False,
    )

    # Audit trail
    op.create_table(
        "activity_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("action_type", sa.String(length=64), nullable=False),
        sa.Column("performed_by", sa.String(length=64), nullable=False),
        sa.Column("performed_by_email", sa.String(length=255), nullable=True),
        sa.Column("target_type", sa.String(length=64), nullable=True),
        sa.Column("target_id", sa.String(length=64), nullable=True),
        sa.Column("details", postgresql.JSON(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_activity_logs_action_type", "activity_logs", ["action_type"])
    op.create_index("ix_activity_logs_target_id", "activity_logs", ["target_id"])
    op.create_index("ix_activity_logs_created_at", "activity_logs", ["created_at"])

    # Announcements
    op.create_table(
        "announcements",
        *_base_columns(),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("audience", _enum("announcement_audience"), nullable=False),
        sa.Column("author_uid", sa.String(length=64), nullable=True),
        sa.Column("is_archived", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("archived_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_announcements_is_archived_archived_at",
        "announcements",
        ["is_archived", "archived_at"],
    )

    # Admin mailbox
    op.create_table(
        "messages",
        *_base_columns(),
        sa.Column("sender_uid", sa.String(length=64), nullable=False),
        sa.Column("sender_email", sa.String(length=255), nullable=False),
        sa.Column("recipient_email", sa.String(length=255), nullable=False),
        sa.Column("subject", sa.String(length=255), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("delivered", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("is_archived", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("archived_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_messages_sender_uid", "messages", ["sender_uid"])
    op.create_index(
        "ix_messages_is_archived_archived_at", "messages", ["is_archived", "archived_at"]
    )


def downgrade() -> None:
    """Drop all tables and enum types."""
    op.drop_table("messages")
    op.drop_table("announcements")
    op.drop_table("activity_logs")
    op.drop_table("applicant_notifications")
    op.drop_table("schedule_slots")
    op.drop_table("applicants")
    op.drop_table("users")

    bind = op.get_bind()
    for name in reversed(list(ENUMS)):
        _enum(name).drop(bind, checkfirst=True)
