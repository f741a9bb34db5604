"""Announcement model."""

import enum
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from school_portal.modules.shared import BaseModel


class AnnouncementAudience(str, enum.Enum):
    ALL = "all"
    APPLICANTS = "applicants"
    STAFF = "staff"


class Announcement(BaseModel):
    """
    A notice shown on the portal.

    Archived announcements are hidden and permanently deleted 45 days
    after archived_at.
    """

    __tablename__ = "announcements"

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    audience: Mapped[AnnouncementAudience] = mapped_column(
        Enum(AnnouncementAudience, name="announcement_audience"),
        nullable=False,
        default=AnnouncementAudience.ALL,
    )
    author_uid: Mapped[str | None] = mapped_column(String(64), nullable=True)

    is_archived: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    archived_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("ix_announcements_is_archived_archived_at", "is_archived", "archived_at"),)
