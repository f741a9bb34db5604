"""
Applicants Schemas

Pydantic schemas for request validation and response serialization.
"""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from school_portal.modules.applicants.models import (
    ApplicantKind,
    ApplicantStatus,
    FinalDecision,
    NotificationType,
    SlotKind,
)

TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


# ============================================
# Intake
# ============================================


class ApplicantCreate(BaseModel):
    """Public application form."""

    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    phone: str | None = Field(None, max_length=30)
    kind: ApplicantKind = ApplicantKind.TEACHER
    position: str | None = Field(None, max_length=150)
    form_data: dict[str, Any] | None = None


class ApplicantCreatedResponse(BaseModel):
    id: str
    email: str
    status: ApplicantStatus
    code_expires_at: datetime | None = None
    message: str


class SendCodeResponse(BaseModel):
    expires_at: datetime
    message: str


class ConfirmEmailRequest(BaseModel):
    code: str = Field(..., min_length=6, max_length=6, pattern=r"^\d{6}$")
    password: str = Field(..., min_length=8, max_length=128)


class ConfirmEmailResponse(BaseModel):
    id: str
    uid: str
    status: ApplicantStatus
    message: str


class DocumentItem(BaseModel):
    type: str
    label: str | None = None
    url: str
    uploaded_at: str


class DocumentUploadResponse(BaseModel):
    document: DocumentItem
    documents: list[DocumentItem]


class NotificationItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    message: str
    type: NotificationType
    category: str | None = None
    is_read: bool
    from_admin: bool
    created_at: datetime


class NotificationListResponse(BaseModel):
    items: list[NotificationItem]


class UnreadCountResponse(BaseModel):
    unread: int


class MarkAllReadResponse(BaseModel):
    updated: int


class ApplicantMessageRequest(BaseModel):
    subject: str = Field(..., min_length=1, max_length=200)
    body: str = Field(..., min_length=1, max_length=5000)


class ApplicantMessageResponse(BaseModel):
    message: NotificationItem
    delivered: bool


# ============================================
# Admin: applicants
# ============================================


class ApplicantListItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    first_name: str
    last_name: str
    email: str
    kind: ApplicantKind
    position: str | None = None
    status: ApplicantStatus
    archived: bool
    final_decision: FinalDecision | None = None
    deletion_date: datetime | None = None
    created_at: datetime


class ApplicantListResponse(BaseModel):
    items: list[ApplicantListItem]
    total: int
    limit: int
    offset: int


class ApplicantDetailResponse(ApplicantListItem):
    uid: str | None = None
    phone: str | None = None
    form_data: dict[str, Any] | None = None
    archived_at: datetime | None = None
    final_decision_date: datetime | None = None
    decision_reason: str | None = None
    interview: dict[str, Any] | None = None
    demo_teaching: dict[str, Any] | None = None
    documents: list[dict[str, Any]] | None = None
    status_updated_at: datetime | None = None
    status_updated_by: str | None = None
    updated_at: datetime


class ApplicantActionResponse(BaseModel):
    applicant: ApplicantDetailResponse
    message: str


class DecisionRequest(BaseModel):
    decision: FinalDecision
    reason: str | None = Field(None, max_length=2000)


class RejectRequest(BaseModel):
    reason: str | None = Field(None, max_length=2000)


# ============================================
# Admin: interviews and demos
# ============================================


class SessionRequest(BaseModel):
    """Date and time are wall-clock values in the school time zone."""

    scheduled_date: date
    scheduled_time: str = Field(..., pattern=TIME_PATTERN)
    mode: str | None = Field(None, max_length=50)
    location: str | None = Field(None, max_length=255)
    notes: str | None = Field(None, max_length=2000)


class DemoRequest(SessionRequest):
    subject: str | None = Field(None, max_length=150)


class SlotItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    applicant_id: str
    kind: SlotKind
    scheduled_date: date
    scheduled_time: str
    datetime_iso: str
    mode: str | None = None
    location: str | None = None
    notes: str | None = None
    subject: str | None = None
    created_by: str | None = None


class ScheduleResponse(BaseModel):
    slot: SlotItem
    applicant: ApplicantDetailResponse


class ConflictListResponse(BaseModel):
    datetime_iso: str
    count: int
    items: list[SlotItem]
