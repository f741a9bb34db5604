"""
Applicants Public Router

Intake endpoints used by the application form and the applicant portal.

Endpoints:
- POST /applicants - Submit the form (applicant starts as pending)
- POST /applicants/{id}/send-code - Resend the e-mail confirmation code
- POST /applicants/{id}/confirm-email - Confirm with the code, choose a password
- POST /applicants/{id}/documents - Upload a document (owner or admin)
- GET /applicants/me/notifications - The signed-in applicant's notifications
- GET /applicants/me/notifications/unread-count
- POST /applicants/me/notifications/{id}/read, POST /applicants/me/notifications/read-all
- DELETE /applicants/me/notifications/{id}
- POST /applicants/me/messages - Write to the admissions team

Security:
- Unauthenticated endpoints are rate limited per IP
- Confirmation codes expire after 5 minutes and allow 3 attempts
"""

import logging

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from school_portal.core.auth import (
    AuthenticatedIdentity,
    get_current_applicant,
    get_current_identity,
)
from school_portal.core.database import get_db
from school_portal.core.errors import ServiceError, internal_error, raise_http_error
from school_portal.core.otp import OtpIssuer, get_intake_otp
from school_portal.core.rate_limit import limit_by_ip
from school_portal.core.storage import LocalObjectStorage, get_storage
from school_portal.modules.applicants import service
from school_portal.modules.applicants.schemas import (
    ApplicantCreate,
    ApplicantCreatedResponse,
    ConfirmEmailRequest,
    ConfirmEmailResponse,
    DocumentItem,
    DocumentUploadResponse,
    ApplicantMessageRequest,
    MarkAllReadResponse,
    NotificationItem,
    NotificationListResponse,
    SendCodeResponse,
    UnreadCountResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "",
    response_model=ApplicantCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit Application",
    description="""
Submit a new application.

The applicant is created as `pending` and a 6-digit confirmation code is
e-mailed. Confirming the code opens the applicant's account and submits
the application for review.

**Rate limit:** 5 submissions per hour per IP
""",
    responses={
        409: {"description": "An application with this email is already in progress"},
    },
    dependencies=[Depends(limit_by_ip("applicant_submit", 5, 3600))],
)
async def submit_application(
    data: ApplicantCreate,
    db: AsyncSession = Depends(get_db),
    otp: OtpIssuer = Depends(get_intake_otp),
) -> ApplicantCreatedResponse:
    try:
        applicant, expires_at = await service.create_applicant(db, otp, data)
    except ServiceError as e:
        raise_http_error(e)
    except Exception as e:
        raise internal_error(e, "submitting application") from e

    if expires_at is None:
        message = "Application received, but we could not send your code. Please request a new one."
    else:
        message = "Application received. Check your email for a confirmation code."

    return ApplicantCreatedResponse(
        id=applicant.id,
        email=applicant.email,
        status=applicant.status,
        code_expires_at=expires_at,
        message=message,
    )


@router.post(
    "/{applicant_id}/send-code",
    response_model=SendCodeResponse,
    summary="Resend Confirmation Code",
    responses={
        409: {"description": "Email already confirmed"},
        429: {"description": "Cooldown active or hourly limit reached"},
    },
    dependencies=[Depends(limit_by_ip("applicant_send_code", 10, 3600))],
)
async def send_code(
    applicant_id: str,
    db: AsyncSession = Depends(get_db),
    otp: OtpIssuer = Depends(get_intake_otp),
) -> SendCodeResponse:
    """Send a new code (2 minute cooldown, 5 per hour)."""
    try:
        expires_at = await service.send_confirmation_code(db, otp, applicant_id)
    except ServiceError as e:
        raise_http_error(e)
    except Exception as e:
        raise internal_error(e, "sending confirmation code") from e

    return SendCodeResponse(expires_at=expires_at, message="A new code was sent to your email.")


@router.post(
    "/{applicant_id}/confirm-email",
    response_model=ConfirmEmailResponse,
    summary="Confirm Email",
    dependencies=[Depends(limit_by_ip("applicant_confirm", 20, 300))],
)
async def confirm_email(
    applicant_id: str,
    body: ConfirmEmailRequest,
    db: AsyncSession = Depends(get_db),
    otp: OtpIssuer = Depends(get_intake_otp),
) -> ConfirmEmailResponse:
    """
    Confirm the applicant's e-mail and create their portal account.

    Raises:
        HTTPException 400: Wrong, expired or unknown code
        HTTPException 409: Already confirmed or email already registered
        HTTPException 429: Too many wrong attempts
    """
    try:
        applicant = await service.confirm_email(db, otp, applicant_id, body.code, body.password)
    except ServiceError as e:
        raise_http_error(e)
    except Exception as e:
        raise internal_error(e, "confirming applicant email") from e

    return ConfirmEmailResponse(
        id=applicant.id,
        uid=applicant.uid,
        status=applicant.status,
        message="Email confirmed. Your application has been submitted.",
    )


@router.post(
    "/{applicant_id}/documents",
    response_model=DocumentUploadResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload Document",
)
async def upload_document(
    applicant_id: str,
    doc_type: str = Form(..., alias="type", min_length=1, max_length=50),
    label: str | None = Form(None, max_length=150),
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    storage: LocalObjectStorage = Depends(get_storage),
    identity: AuthenticatedIdentity = Depends(get_current_identity),
) -> DocumentUploadResponse:
    """Append a document (CV, certificate, ...) to the application."""
    try:
        data = await file.read()
        document = await service.add_document(
            db,
            storage,
            applicant_id,
            identity,
            doc_type=doc_type,
            label=label,
            filename=file.filename,
            content_type=file.content_type,
            data=data,
        )
        applicant = await service.get_applicant(db, applicant_id)
    except ServiceError as e:
        raise_http_error(e)
    except Exception as e:
        raise internal_error(e, "uploading document") from e
    finally:
        await file.close()

    documents = [DocumentItem(**doc) for doc in applicant.documents or []]
    return DocumentUploadResponse(document=DocumentItem(**document), documents=documents)


@router.get(
    "/me/notifications",
    response_model=NotificationListResponse,
    summary="My Notifications",
)
async def my_notifications(
    db: AsyncSession = Depends(get_db),
    identity: AuthenticatedIdentity = Depends(get_current_applicant),
) -> NotificationListResponse:
    try:
        notifications = await service.list_my_notifications(db, identity)
    except ServiceError as e:
        raise_http_error(e)
    except Exception as e:
        raise internal_error(e, "listing notifications") from e

    return NotificationListResponse(
        items=[NotificationItem.model_validate(n) for n in notifications]
    )


@router.get(
    "/me/notifications/unread-count",
    response_model=UnreadCountResponse,
    summary="Unread Notification Count",
)
async def my_unread_count(
    db: AsyncSession = Depends(get_db),
    identity: AuthenticatedIdentity = Depends(get_current_applicant),
) -> UnreadCountResponse:
    try:
        unread = await service.count_my_unread_notifications(db, identity)
    except ServiceError as e:
        raise_http_error(e)
    except Exception as e:
        raise internal_error(e, "counting unread notifications") from e

    return UnreadCountResponse(unread=unread)


@router.post(
    "/me/notifications/read-all",
    response_model=MarkAllReadResponse,
    summary="Mark All Notifications Read",
)
async def mark_all_read(
    db: AsyncSession = Depends(get_db),
    identity: AuthenticatedIdentity = Depends(get_current_applicant),
) -> MarkAllReadResponse:
    try:
        updated = await service.mark_all_my_notifications_read(db, identity)
    except ServiceError as e:
        raise_http_error(e)
    except Exception as e:
        raise internal_error(e, "marking notifications read") from e

    return MarkAllReadResponse(updated=updated)


@router.post(
    "/me/notifications/{notification_id}/read",
    response_model=NotificationItem,
    summary="Mark Notification Read",
)
async def mark_read(
    notification_id: str,
    db: AsyncSession = Depends(get_db),
    identity: AuthenticatedIdentity = Depends(get_current_applicant),
) -> NotificationItem:
    try:
        notification = await service.mark_my_notification_read(db, identity, notification_id)
    except ServiceError as e:
        raise_http_error(e)
    except Exception as e:
        raise internal_error(e, "marking notification read") from e

    return NotificationItem.model_validate(notification)


@router.delete(
    "/me/notifications/{notification_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Notification",
)
async def delete_notification(
    notification_id: str,
    db: AsyncSession = Depends(get_db),
    identity: AuthenticatedIdentity = Depends(get_current_applicant),
) -> None:
    try:
        await service.delete_my_notification(db, identity, notification_id)
    except ServiceError as e:
        raise_http_error(e)
    except Exception as e:
        raise internal_error(e, "deleting notification") from e


@router.post(
    "/me/messages",
    response_model=NotificationItem,
    status_code=status.HTTP_201_CREATED,
    summary="Message The Admissions Team",
    dependencies=[Depends(limit_by_ip("applicant_message", 20, 3600))],
)
async def message_admins(
    body: ApplicantMessageRequest,
    db: AsyncSession = Depends(get_db),
    identity: AuthenticatedIdentity = Depends(get_current_applicant),
) -> NotificationItem:
    try:
        message = await service.send_message_to_admins(db, identity, body.subject, body.body)
    except ServiceError as e:
        raise_http_error(e)
    except Exception as e:
        raise internal_error(e, "sending applicant message") from e

    return NotificationItem.model_validate(message)
