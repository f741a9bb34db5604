"""Activity log schemas."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class ActivityLogItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    action_type: str
    performed_by: str
    performed_by_email: str | None = None
    target_type: str | None = None
    target_id: str | None = None
    details: dict[str, Any] | None = None
    created_at: datetime


class ActivityLogListResponse(BaseModel):
    items: list[ActivityLogItem]
    total: int
    limit: int
    offset: int
