"""Authentication schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class LoginRequest(BaseModel):
    """Login request schema."""

    email: EmailStr
    password: str


class LoginChallengeResponse(BaseModel):
    """Password accepted; a one-time code was e-mailed."""

    otp_required: bool = True
    uid: str
    email: str
    expires_at: datetime
    message: str


class VerifyOtpRequest(BaseModel):
    uid: str
    code: str = Field(..., min_length=6, max_length=6, pattern=r"^\d{6}$")


class ResendOtpRequest(BaseModel):
    uid: str


class UserResponse(BaseModel):
    """User response schema for login."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    display_name: str
    role: str
    must_change_password: bool
    last_login_at: datetime | None = None


class LoginResponse(BaseModel):
    """Login response schema."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    user: UserResponse


class IdentityResponse(BaseModel):
    uid: str
    role: str
    email: str


class LogoutResponse(BaseModel):
    message: str


class RefreshRequest(BaseModel):
    refresh_token: str


class TokenPairResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=8, max_length=128)


class ChangePasswordResponse(BaseModel):
    message: str
    must_change_password: bool
