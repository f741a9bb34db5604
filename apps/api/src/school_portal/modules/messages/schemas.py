"""Admin mailbox schemas."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field

MessageFolder = Literal["sent", "archived"]


class MessageCreate(BaseModel):
    recipient_email: EmailStr
    subject: str = Field(..., min_length=1, max_length=255)
    body: str = Field(..., min_length=1, max_length=20000)


class MessageItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    sender_uid: str
    sender_email: str
    recipient_email: str
    subject: str
    body: str
    delivered: bool
    is_read: bool
    is_archived: bool
    archived_at: datetime | None = None
    created_at: datetime


class MessageListResponse(BaseModel):
    folder: MessageFolder
    items: list[MessageItem]
    total: int
