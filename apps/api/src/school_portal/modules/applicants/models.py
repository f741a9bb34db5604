"""
Applicant Models

Database models for teacher and student applicants, the interview / demo
schedule, and the notifications shown in the applicant portal.
"""

import enum
from datetime import date, datetime

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSON, UUID
from sqlalchemy.orm import Mapped, mapped_column

from school_portal.modules.shared import BaseModel


class ApplicantStatus(str, enum.Enum):
    """Lifecycle status of an applicant."""

    PENDING = "pending"
    SUBMITTED = "submitted"
    REVIEWING = "reviewing"
    INTERVIEW_SCHEDULED = "interview_scheduled"
    INTERVIEW_COMPLETED = "interview_completed"
    DEMO_SCHEDULED = "demo_scheduled"
    DEMO_COMPLETED = "demo_completed"
    ONBOARDING = "onboarding"
    ARCHIVED = "archived"
    REJECTED = "rejected"


class FinalDecision(str, enum.Enum):
    APPROVED = "approved"
    REJECTED = "rejected"


class ApplicantKind(str, enum.Enum):
    TEACHER = "teacher"
    STUDENT = "student"


class SlotKind(str, enum.Enum):
    """Interviews and demos share one schedule."""

    INTERVIEW = "interview"
    DEMO = "demo"


class NotificationType(str, enum.Enum):
    PROGRESS = "progress"
    SCHEDULE = "schedule"
    INFO = "info"


class Applicant(BaseModel):
    """
    A person applying to the school.

    The interview and demo_teaching columns hold a snapshot of the
    schedule slot so the portal can render without a join; the slot row
    is the source of truth for conflict checks.

    Only the retention sweep deletes applicants (once deletion_date passes).
    """

    __tablename__ = "applicants"

    # Linked account, created when the applicant confirms their e-mail
    uid: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Identity
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    kind: Mapped[ApplicantKind] = mapped_column(
        Enum(ApplicantKind, name="applicant_kind"),
        nullable=False,
        default=ApplicantKind.TEACHER,
    )
    position: Mapped[str | None] = mapped_column(String(150), nullable=True)
    form_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # Lifecycle
    status: Mapped[ApplicantStatus] = mapped_column(
        Enum(ApplicantStatus, name="applicant_status"),
        nullable=False,
        default=ApplicantStatus.PENDING,
    )
    status_updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    status_updated_by: Mapped[str | None] = mapped_column(String(64), nullable=True)

    archived: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    archived_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    final_decision: Mapped[FinalDecision | None] = mapped_column(
        Enum(FinalDecision, name="final_decision"), nullable=True
    )
    final_decision_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    decision_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    deletion_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Schedule snapshots
    interview: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    demo_teaching: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # [{type, label, url, uploaded_at}, ...], append-only
    documents: Mapped[list | None] = mapped_column(JSON, nullable=True)

    __table_args__ = (
        Index("ix_applicants_status", "status"),
        Index("ix_applicants_email", "email"),
        Index("ix_applicants_uid", "uid"),
        Index("ix_applicants_deletion_date", "deletion_date"),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return f"<Applicant(id={self.id}, email={self.email}, status={self.status.value})>"


class ScheduleSlot(BaseModel):
    """
    A booked interview or demo.

    datetime_iso is unique across both kinds, so one panel never has two
    sessions at the same moment. Concurrent inserts for the same moment
    fail on the index.
    """

    __tablename__ = "schedule_slots"

    applicant_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("applicants.id", ondelete="CASCADE"),
        nullable=False,
    )
    kind: Mapped[SlotKind] = mapped_column(Enum(SlotKind, name="slot_kind"), nullable=False)

    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False)
    scheduled_time: Mapped[str] = mapped_column(String(5), nullable=False)
    datetime_iso: Mapped[str] = mapped_column(String(40), nullable=False)

    mode: Mapped[str | None] = mapped_column(String(50), nullable=True)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    subject: Mapped[str | None] = mapped_column(String(150), nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(64), nullable=True)

    __table_args__ = (
        Index("ux_schedule_slots_datetime_iso", "datetime_iso", unique=True),
        Index("ix_schedule_slots_applicant_id", "applicant_id"),
    )


class ApplicantNotification(BaseModel):
    """Message shown in the applicant portal."""

    __tablename__ = "applicant_notifications"

    applicant_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("applicants.id", ondelete="CASCADE"),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[NotificationType] = mapped_column(
        Enum(NotificationType, name="notification_type"),
        nullable=False,
        default=NotificationType.INFO,
    )
    category: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    from_admin: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (Index("ix_applicant_notifications_applicant_id", "applicant_id"),)
