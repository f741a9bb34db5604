"""
Activity Log Models

Append-only record of admin actions and automated deletions.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Index, String, func
from sqlalchemy.dialects.postgresql import JSON, UUID
from sqlalchemy.orm import Mapped, mapped_column

from school_portal.core.database import Base

SYSTEM_ACTOR = "system"


class ActivityLog(Base):
    """One admin or system action."""

    __tablename__ = "activity_logs"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    action_type: Mapped[str] = mapped_column(String(64), nullable=False)

    # uid of the admin, or "system" for scheduled jobs
    performed_by: Mapped[str] = mapped_column(String(64), nullable=False)
    performed_by_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    target_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    target_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    details: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_activity_logs_action_type", "action_type"),
        Index("ix_activity_logs_target_id", "target_id"),
        Index("ix_activity_logs_created_at", "created_at"),
    )
