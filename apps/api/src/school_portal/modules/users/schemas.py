"""User management schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from school_portal.modules.users.models import UserRole


class UserItem(BaseModel):
    """User as shown in the back office."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    display_name: str
    role: UserRole
    is_archived: bool
    archived_at: datetime | None = None
    must_change_password: bool
    last_login_at: datetime | None = None
    created_at: datetime


class UserListResponse(BaseModel):
    items: list[UserItem]
    total: int
    limit: int
    offset: int


class UserActionResponse(BaseModel):
    user: UserItem
    message: str


class AdminInviteRequest(BaseModel):
    """Start creating an admin: a code is sent to this address."""

    email: EmailStr
    display_name: str = Field(..., min_length=1, max_length=200)
    role: UserRole = UserRole.ADMIN


class AdminInviteResendRequest(BaseModel):
    email: EmailStr
    display_name: str = Field(..., min_length=1, max_length=200)


class AdminInviteResponse(BaseModel):
    email: str
    expires_at: datetime
    message: str


class AdminInviteVerifyRequest(BaseModel):
    email: EmailStr
    code: str = Field(..., min_length=6, max_length=6, pattern=r"^\d{6}$")
