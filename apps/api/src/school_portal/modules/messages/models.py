"""Admin mailbox model."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from school_portal.modules.shared import BaseModel


class Message(BaseModel):
    """
    An e-mail composed in the admin mailbox.

    Archived messages are permanently deleted 60 days after archived_at.
    """

    __tablename__ = "messages"

    sender_uid: Mapped[str] = mapped_column(String(64), nullable=False)
    sender_email: Mapped[str] = mapped_column(String(255), nullable=False)
    recipient_email: Mapped[str] = mapped_column(String(255), nullable=False)
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)

    delivered: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_archived: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    archived_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_messages_sender_uid", "sender_uid"),
        Index("ix_messages_is_archived_archived_at", "is_archived", "archived_at"),
    )
