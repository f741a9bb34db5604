"""Announcement schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from school_portal.modules.announcements.models import AnnouncementAudience


class AnnouncementCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    body: str = Field(..., min_length=1, max_length=10000)
    audience: AnnouncementAudience = AnnouncementAudience.ALL


class AnnouncementItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    body: str
    audience: AnnouncementAudience
    author_uid: str | None = None
    is_archived: bool
    archived_at: datetime | None = None
    created_at: datetime


class AnnouncementListResponse(BaseModel):
    items: list[AnnouncementItem]
    total: int
