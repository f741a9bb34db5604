"""
Applicants Service Layer

Business logic for the applicant lifecycle. Orchestrates repository
operations, the one-time code flow, activity logging and notifications.

This module implements:
1. Intake:
   - Create a pending applicant and e-mail a confirmation code
   - Confirm the e-mail: create the applicant account, pending -> submitted
   - Append uploaded documents

2. Review and scheduling:
   - start-review, interviews and teaching demos
   - One schedule for both kinds: two sessions can never share a
     datetime_iso. The check locks the colliding row and the unique index
     catches concurrent inserts; both surface as SCHEDULE_CONFLICT and
     leave every row untouched

3. Decision and archive:
   - One final decision per applicant; both outcomes start the 30 day
     retention clock (approval only when auto delete is enabled)
   - Archive marks onboarding complete; it can be undone

4. Portal:
   - Applicant notifications: list, unread count, mark read, delete
   - Message thread between admins and an applicant (admin messages are
     also e-mailed)

State changes and their activity log rows commit together. Notifications
and e-mails run afterwards and never undo a committed change.
"""

import logging
from datetime import UTC, date, datetime, timedelta
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from school_portal.core.auth import AuthenticatedIdentity
from school_portal.core.config import settings
from school_portal.core.database import async_session_maker
from school_portal.core.email import (
    send_admin_message,
    send_decision_email,
    send_otp_code,
    send_schedule_notice,
)
from school_portal.core.errors import ServiceError
from school_portal.core.notify import NotifyStep, commit_then_notify, notify_best_effort
from school_portal.core.otp import OtpIssuer, OtpNotFoundError
from school_portal.core.security import hash_password
from school_portal.core.storage import LocalObjectStorage
from school_portal.modules.activity_logs import repository as activity_log
from school_portal.modules.applicants import repository
from school_portal.modules.applicants.models import (
    Applicant,
    ApplicantKind,
    ApplicantNotification,
    ApplicantStatus,
    FinalDecision,
    NotificationType,
    ScheduleSlot,
    SlotKind,
)
from school_portal.modules.applicants.schemas import ApplicantCreate, DemoRequest, SessionRequest
from school_portal.modules.users.models import UserRole
from school_portal.modules.users.repository import UserRepository
from school_portal.modules.users.service import EmailAlreadyRegisteredError

logger = logging.getLogger(__name__)

TARGET_TYPE = "applicant"


# ============================================
# Errors
# ============================================


class ApplicantServiceError(ServiceError):
    """Base exception for applicant service errors."""


class ApplicantNotFoundError(ApplicantServiceError):
    def __init__(self, applicant_id: str | None = None):
        message = f"Applicant {applicant_id} not found" if applicant_id else "Applicant not found"
        super().__init__(
            message=message,
            error_code="APPLICANT_NOT_FOUND",
            status_code=404,
        )


class SlotNotFoundError(ApplicantServiceError):
    def __init__(self, slot_id: str | None = None):
        message = f"Session {slot_id} not found" if slot_id else "No session is scheduled"
        super().__init__(
            message=message,
            error_code="SLOT_NOT_FOUND",
            status_code=404,
        )


class SlotApplicantMismatchError(ApplicantServiceError):
    def __init__(self):
        super().__init__(
            message="This session does not belong to the applicant.",
            error_code="SLOT_APPLICANT_MISMATCH",
            status_code=400,
        )


class ScheduleConflictError(ApplicantServiceError):
    """Another session is already booked at the same moment."""

    def __init__(self, datetime_iso: str, conflict: ScheduleSlot | None = None):
        details: dict[str, Any] = {"datetime_iso": datetime_iso}
        if conflict is not None:
            details.update(
                slot_id=conflict.id,
                applicant_id=conflict.applicant_id,
                kind=conflict.kind.value,
            )
        super().__init__(
            message=f"Another session is already scheduled at {datetime_iso}.",
            error_code="SCHEDULE_CONFLICT",
            status_code=409,
            extra={"conflict": details},
        )


class SessionAlreadyScheduledError(ApplicantServiceError):
    def __init__(self, session_label: str):
        super().__init__(
            message=f"The {session_label} is already scheduled. Reschedule or cancel it instead.",
            error_code="SESSION_ALREADY_SCHEDULED",
            status_code=409,
        )


class InvalidTransitionError(ApplicantServiceError):
    def __init__(self, current: ApplicantStatus, target: ApplicantStatus):
        super().__init__(
            message=f"Cannot move an applicant from {current.value} to {target.value}.",
            error_code="INVALID_STATUS_TRANSITION",
            status_code=409,
            extra={"current_status": current.value, "requested_status": target.value},
        )


class DecisionAlreadyRecordedError(ApplicantServiceError):
    def __init__(self, decision: FinalDecision):
        super().__init__(
            message=f"A final decision ({decision.value}) has already been recorded.",
            error_code="DECISION_ALREADY_RECORDED",
            status_code=409,
        )


class ApplicantValidationError(ApplicantServiceError):
    def __init__(self, message: str):
        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            status_code=400,
        )


class DuplicateApplicantError(ApplicantServiceError):
    def __init__(self):
        super().__init__(
            message="An application with this email is already in progress.",
            error_code="DUPLICATE_APPLICATION",
            status_code=409,
        )


class EmailAlreadyConfirmedError(ApplicantServiceError):
    def __init__(self):
        super().__init__(
            message="This application's email has already been confirmed.",
            error_code="EMAIL_ALREADY_CONFIRMED",
            status_code=409,
        )


class ConfirmationDeliveryError(ApplicantServiceError):
    def __init__(self):
        super().__init__(
            message="We could not send your confirmation code. Please request a new one.",
            error_code="EMAIL_DELIVERY_FAILED",
            status_code=502,
        )


class ApplicantAccessDeniedError(ApplicantServiceError):
    def __init__(self):
        super().__init__(
            message="You can only change your own application.",
            error_code="APPLICANT_ACCESS_DENIED",
            status_code=403,
        )


class NotificationNotFoundError(ApplicantServiceError):
    def __init__(self, notification_id: str):
        super().__init__(
            message=f"Notification {notification_id} not found",
            error_code="NOTIFICATION_NOT_FOUND",
            status_code=404,
        )


# ============================================
# Helpers
# ============================================


def _utcnow() -> datetime:
    return datetime.now(UTC)


async def _load(db: AsyncSession, applicant_id: str, for_update: bool = True) -> Applicant:
    applicant = await repository.get_by_id(db, applicant_id, for_update=for_update)
    if not applicant:
        logger.warning(f"Applicant not found: {applicant_id}")
        raise ApplicantNotFoundError(applicant_id)
    return applicant


def _transition(
    applicant: Applicant,
    target: ApplicantStatus,
    actor_uid: str | None,
    now: datetime,
) -> None:
    try:
        repository.apply_transition(applicant, target, actor_uid, now)
    except repository.InvalidStatusTransitionError as e:
        logger.warning(f"Applicant {applicant.id}: {e}")
        raise InvalidTransitionError(e.current_status, e.new_status) from e


def _log(
    db: AsyncSession,
    action_type: str,
    applicant: Applicant,
    actor: AuthenticatedIdentity,
    details: dict[str, Any] | None = None,
) -> None:
    activity_log.record(
        db,
        action_type,
        performed_by=actor.uid,
        performed_by_email=actor.email,
        target_type=TARGET_TYPE,
        target_id=applicant.id,
        details=details,
    )


async def _notify_applicant(
    applicant_id: str,
    title: str,
    message: str,
    type: NotificationType,
    category: str,
) -> None:
    # Own session: a failed insert must not roll back the caller's committed work
    async with async_session_maker() as session:
        repository.add_notification(session, applicant_id, title, message, type, category)
        await session.commit()


def _schedule_notice_steps(
    applicant: Applicant,
    kind: SlotKind,
    action: str,
    slot: ScheduleSlot | None = None,
) -> list[NotifyStep]:
    """Notification row + e-mail for an interview/demo change."""
    label = "interview" if kind == SlotKind.INTERVIEW else "teaching demo"
    when = f" for {slot.scheduled_date.isoformat()} at {slot.scheduled_time}" if slot else ""
    applicant_id = applicant.id
    email = applicant.email
    name = applicant.full_name

    return [
        (
            "notification",
            lambda: _notify_applicant(
                applicant_id,
                f"{label.title()} {action}",
                f"Your {label} has been {action}{when}.",
                NotificationType.SCHEDULE,
                kind.value,
            ),
        ),
        (
            "email",
            lambda: send_schedule_notice(
                to_email=email,
                applicant_name=name,
                session_label=label,
                action=action,
                scheduled_date=slot.scheduled_date if slot else None,
                scheduled_time=slot.scheduled_time if slot else None,
                mode=slot.mode if slot else None,
                location=slot.location if slot else None,
            ),
        ),
    ]


async def _ensure_free(db: AsyncSession, datetime_iso: str, exclude_id: str | None = None) -> None:
    conflict = await repository.find_slot_conflict(db, datetime_iso, exclude_id=exclude_id)
    if conflict is not None:
        logger.info(f"Schedule conflict at {datetime_iso} with slot {conflict.id}")
        raise ScheduleConflictError(datetime_iso, conflict)


async def _commit_schedule(db: AsyncSession, datetime_iso: str) -> None:
    """Commit a scheduling change; a unique index hit means a concurrent booking."""
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        logger.info(f"Concurrent booking at {datetime_iso} rejected by unique index")
        raise ScheduleConflictError(datetime_iso) from e


async def _owned_slot(
    db: AsyncSession,
    applicant: Applicant,
    slot_id: str | None,
    kind: SlotKind,
) -> ScheduleSlot:
    if not slot_id:
        raise SlotNotFoundError()
    slot = await repository.get_slot(db, slot_id, for_update=True)
    if slot is None or slot.kind != kind:
        raise SlotNotFoundError(slot_id)
    if slot.applicant_id != applicant.id:
        logger.warning(f"Slot {slot_id} does not belong to applicant {applicant.id}")
        raise SlotApplicantMismatchError()
    return slot


def _apply_session(slot: ScheduleSlot, body: SessionRequest, datetime_iso: str) -> None:
    slot.scheduled_date = body.scheduled_date
    slot.scheduled_time = body.scheduled_time
    slot.datetime_iso = datetime_iso
    slot.mode = body.mode
    slot.location = body.location
    slot.notes = body.notes
    if isinstance(body, DemoRequest):
        slot.subject = body.subject


def _today_in_school_tz(now: datetime) -> date:
    return now.astimezone(settings.timezone).date()


def _check_demo_date(body: DemoRequest, now: datetime) -> None:
    if body.scheduled_date < _today_in_school_tz(now):
        raise ApplicantValidationError("The demo date cannot be in the past.")


def _datetime_iso(body: SessionRequest) -> str:
    return repository.normalize_datetime_iso(
        body.scheduled_date, body.scheduled_time, settings.timezone
    )


# ============================================
# Intake
# ============================================


async def _send_confirmation_code(
    otp: OtpIssuer, applicant: Applicant, resend: bool
) -> datetime:
    issued = await otp.issue(applicant.id, payload={"email": applicant.email}, resend=resend)
    sent = await send_otp_code(
        to_email=applicant.email,
        recipient_name=applicant.first_name,
        code=issued.code,
        purpose="confirm your email address",
    )
    if not sent:
        await otp.discard(applicant.id)
        raise ConfirmationDeliveryError()
    return issued.expires_at


async def create_applicant(
    db: AsyncSession,
    otp: OtpIssuer,
    data: ApplicantCreate,
) -> tuple[Applicant, datetime | None]:
    """
    Create a pending applicant and e-mail the confirmation code.

    Returns:
        (applicant, code expiry). The expiry is None when the e-mail could
        not be sent; the applicant is kept and can ask for a new code.

    Raises:
        DuplicateApplicantError: An undecided application uses this email
    """
    if await repository.get_active_by_email(db, data.email):
        logger.warning(f"Duplicate application attempt for {data.email}")
        raise DuplicateApplicantError()

    applicant = await repository.create_applicant(
        db,
        first_name=data.first_name,
        last_name=data.last_name,
        email=data.email,
        phone=data.phone,
        kind=data.kind,
        position=data.position,
        form_data=data.form_data,
    )
    await db.commit()
    logger.info(f"Created applicant {applicant.id} ({applicant.kind.value})")

    try:
        expires_at = await _send_confirmation_code(otp, applicant, resend=False)
    except ConfirmationDeliveryError:
        logger.warning(f"Confirmation code for applicant {applicant.id} was not delivered")
        return applicant, None
    return applicant, expires_at


async def send_confirmation_code(
    db: AsyncSession,
    otp: OtpIssuer,
    applicant_id: str,
) -> datetime:
    """
    Send a new confirmation code.

    The first resend goes out at once and later ones honor the cooldown.
    After a failed delivery there is nothing pending and a fresh code goes
    out.
    """
    applicant = await _load(db, applicant_id, for_update=False)
    if applicant.status != ApplicantStatus.PENDING:
        raise EmailAlreadyConfirmedError()

    try:
        return await _send_confirmation_code(otp, applicant, resend=True)
    except OtpNotFoundError:
        return await _send_confirmation_code(otp, applicant, resend=False)


async def confirm_email(
    db: AsyncSession,
    otp: OtpIssuer,
    applicant_id: str,
    code: str,
    password: str,
    now: datetime | None = None,
) -> Applicant:
    """
    Confirm the applicant's e-mail with their code and open their account.

    Creates an applicant user with the chosen password, links it, and
    moves the application from pending to submitted.
    """
    now = now or _utcnow()
    applicant = await _load(db, applicant_id)

    if applicant.uid is not None or applicant.status != ApplicantStatus.PENDING:
        raise EmailAlreadyConfirmedError()

    if await UserRepository.email_exists(db, applicant.email):
        raise EmailAlreadyRegisteredError(applicant.email)

    await otp.verify(applicant.id, code)

    user = await UserRepository.create(
        db,
        email=applicant.email,
        password_hash=hash_password(password),
        display_name=applicant.full_name,
        role=UserRole.APPLICANT,
        must_change_password=False,
    )
    applicant.uid = user.id
    _transition(applicant, ApplicantStatus.SUBMITTED, user.id, now)

    await commit_then_notify(
        db,
        f"email confirmation for applicant {applicant.id}",
        [
            (
                "notification",
                lambda: _notify_applicant(
                    applicant.id,
                    "Application received",
                    "Your application has been submitted and will be reviewed soon.",
                    NotificationType.PROGRESS,
                    "submitted",
                ),
            ),
        ],
    )
    logger.info(f"Applicant {applicant.id} confirmed email, account {user.id}")
    return applicant


async def add_document(
    db: AsyncSession,
    storage: LocalObjectStorage,
    applicant_id: str,
    identity: AuthenticatedIdentity,
    doc_type: str,
    label: str | None,
    filename: str | None,
    content_type: str | None,
    data: bytes,
    now: datetime | None = None,
) -> dict[str, Any]:
    """
    Store an uploaded file and append its descriptor to the applicant.

    Returns:
        The new document descriptor
    """
    now = now or _utcnow()

    if not data:
        raise ApplicantValidationError("The uploaded file is empty.")
    if len(data) > settings.max_upload_bytes:
        raise ApplicantValidationError(
            f"Files larger than {settings.max_upload_bytes // (1024 * 1024)} MB are not accepted."
        )

    applicant = await _load(db, applicant_id, for_update=False)
    if not identity.is_admin and applicant.uid != identity.uid:
        raise ApplicantAccessDeniedError()

    url = await storage.put(f"applicants/{applicant.id}", data, filename, content_type)

    # Locked re-read refreshes documents committed during the upload
    applicant = await _load(db, applicant_id)
    document = {
        "type": doc_type,
        "label": label,
        "url": url,
        "uploaded_at": now.isoformat(),
    }
    applicant.documents = [*(applicant.documents or []), document]

    if identity.is_admin:
        _log(db, "document_uploaded", applicant, identity, {"type": doc_type, "url": url})

    await db.commit()
    logger.info(f"Document {doc_type} added to applicant {applicant.id}")
    return document


async def _my_applicant(db: AsyncSession, identity: AuthenticatedIdentity) -> Applicant:
    applicant = await repository.get_by_uid(db, identity.uid)
    if not applicant:
        raise ApplicantNotFoundError()
    return applicant


async def list_my_notifications(
    db: AsyncSession,
    identity: AuthenticatedIdentity,
) -> list[ApplicantNotification]:
    applicant = await _my_applicant(db, identity)
    return await repository.list_notifications(db, applicant.id)


async def count_my_unread_notifications(db: AsyncSession, identity: AuthenticatedIdentity) -> int:
    applicant = await _my_applicant(db, identity)
    return await repository.count_unread_notifications(db, applicant.id)


async def _my_notification(
    db: AsyncSession, identity: AuthenticatedIdentity, notification_id: str
) -> ApplicantNotification:
    applicant = await _my_applicant(db, identity)
    notification = await repository.get_notification(db, applicant.id, notification_id)
    if not notification:
        raise NotificationNotFoundError(notification_id)
    return notification


async def mark_my_notification_read(
    db: AsyncSession,
    identity: AuthenticatedIdentity,
    notification_id: str,
) -> ApplicantNotification:
    notification = await _my_notification(db, identity, notification_id)
    if not notification.is_read:
        notification.is_read = True
        await db.commit()
    return notification


async def mark_all_my_notifications_read(
    db: AsyncSession,
    identity: AuthenticatedIdentity,
) -> int:
    applicant = await _my_applicant(db, identity)
    updated = await repository.mark_all_notifications_read(db, applicant.id)
    await db.commit()
    return updated


async def delete_my_notification(
    db: AsyncSession,
    identity: AuthenticatedIdentity,
    notification_id: str,
) -> None:
    notification = await _my_notification(db, identity, notification_id)
    await db.delete(notification)
    await db.commit()
    logger.info(f"Notification {notification_id} deleted by applicant {identity.uid}")


# ============================================
# Messages between admins and applicants
# ============================================

MESSAGE_CATEGORY = "message"


async def send_message_to_applicant(
    db: AsyncSession,
    applicant_id: str,
    subject: str,
    body: str,
    actor: AuthenticatedIdentity,
) -> tuple[ApplicantNotification, bool]:
    """
    Post an admin message to the applicant's portal, then e-mail it.

    Returns:
        (stored message, whether the e-mail went out)
    """
    applicant = await _load(db, applicant_id, for_update=False)
    message = repository.add_notification(
        db,
        applicant.id,
        subject,
        body,
        NotificationType.INFO,
        MESSAGE_CATEGORY,
        from_admin=True,
    )
    _log(db, "applicant_message_sent", applicant, actor, {"subject": subject})

    email = applicant.email
    failed = await commit_then_notify(
        db,
        f"message to applicant {applicant.id}",
        [
            (
                "email",
                lambda: send_admin_message(
                    to_email=email,
                    subject=subject,
                    message=body,
                    sender_name=actor.email,
                ),
            ),
        ],
    )
    await db.refresh(message)
    return message, not failed


async def send_message_to_admins(
    db: AsyncSession,
    identity: AuthenticatedIdentity,
    subject: str,
    body: str,
) -> ApplicantNotification:
    """Store a message from the applicant on their own thread."""
    applicant = await _my_applicant(db, identity)
    message = repository.add_notification(
        db,
        applicant.id,
        subject,
        body,
        NotificationType.INFO,
        MESSAGE_CATEGORY,
        from_admin=False,
    )
    await db.commit()
    await db.refresh(message)
    logger.info(f"Applicant {applicant.id} sent a message")
    return message


async def list_applicant_messages(
    db: AsyncSession,
    applicant_id: str,
) -> list[ApplicantNotification]:
    """Both directions of an applicant's message thread, newest first."""
    applicant = await _load(db, applicant_id, for_update=False)
    return await repository.list_notifications(db, applicant.id, category=MESSAGE_CATEGORY)


# ============================================
# Admin: listing
# ============================================


async def list_applicants(
    db: AsyncSession,
    status: ApplicantStatus | None = None,
    kind: ApplicantKind | None = None,
    search: str | None = None,
    include_archived: bool = False,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[Applicant], int]:
    return await repository.list_applicants(
        db,
        status=status,
        kind=kind,
        search=search,
        include_archived=include_archived,
        limit=limit,
        offset=offset,
    )


async def get_applicant(db: AsyncSession, applicant_id: str) -> Applicant:
    return await _load(db, applicant_id, for_update=False)


async def list_conflicts(
    db: AsyncSession, datetime_iso: str
) -> tuple[str, list[ScheduleSlot]]:
    """
    Sessions booked at the moment datetime_iso names (at most 50).

    Returns:
        Tuple of (schedule key the input resolved to, slots)

    Raises:
        ApplicantValidationError: If datetime_iso is not an ISO-8601 date and time
    """
    try:
        key = repository.canonical_datetime_iso(datetime_iso, settings.timezone)
    except ValueError as e:
        raise ApplicantValidationError(
            f"datetime_iso is not an ISO-8601 date and time: {datetime_iso!r}"
        ) from e
    return key, await repository.list_slots_at(db, key, limit=50)


# ============================================
# Admin: review and interviews
# ============================================


async def start_review(
    db: AsyncSession,
    applicant_id: str,
    actor: AuthenticatedIdentity,
    now: datetime | None = None,
) -> Applicant:
    """Move a submitted applicant to reviewing."""
    now = now or _utcnow()
    applicant = await _load(db, applicant_id)

    if applicant.status != ApplicantStatus.SUBMITTED:
        raise InvalidTransitionError(applicant.status, ApplicantStatus.REVIEWING)

    _transition(applicant, ApplicantStatus.REVIEWING, actor.uid, now)
    _log(db, "start_review", applicant, actor)

    await commit_then_notify(
        db,
        f"review start for applicant {applicant.id}",
        [
            (
                "notification",
                lambda: _notify_applicant(
                    applicant.id,
                    "Application under review",
                    "Our team has started reviewing your application.",
                    NotificationType.PROGRESS,
                    "reviewing",
                ),
            ),
        ],
    )
    logger.info(f"Admin {actor.uid} started review of applicant {applicant.id}")
    return applicant


async def schedule_interview(
    db: AsyncSession,
    applicant_id: str,
    body: SessionRequest,
    actor: AuthenticatedIdentity,
    now: datetime | None = None,
) -> tuple[Applicant, ScheduleSlot]:
    """
    Book an interview.

    Raises:
        ScheduleConflictError: Another session is booked at the same moment
        SessionAlreadyScheduledError: The applicant already has an open interview
        InvalidTransitionError: The applicant cannot be interviewed now
    """
    now = now or _utcnow()
    datetime_iso = _datetime_iso(body)

    applicant = await _load(db, applicant_id)
    if applicant.interview and not applicant.interview.get("completed"):
        raise SessionAlreadyScheduledError("interview")

    await _ensure_free(db, datetime_iso)
    # Validate before the insert so a bad transition never creates a slot
    if not repository.can_transition(applicant.status, ApplicantStatus.INTERVIEW_SCHEDULED):
        raise InvalidTransitionError(applicant.status, ApplicantStatus.INTERVIEW_SCHEDULED)

    try:
        slot = await repository.create_slot(
            db,
            applicant_id=applicant.id,
            kind=SlotKind.INTERVIEW,
            scheduled_date=body.scheduled_date,
            scheduled_time=body.scheduled_time,
            datetime_iso=datetime_iso,
            mode=body.mode,
            location=body.location,
            notes=body.notes,
            created_by=actor.uid,
        )
    except IntegrityError as e:
        await db.rollback()
        raise ScheduleConflictError(datetime_iso) from e

    applicant.interview = repository.slot_snapshot(slot)
    _transition(applicant, ApplicantStatus.INTERVIEW_SCHEDULED, actor.uid, now)
    _log(
        db,
        "schedule_interview",
        applicant,
        actor,
        {"slot_id": slot.id, "datetime_iso": datetime_iso},
    )
    await _commit_schedule(db, datetime_iso)

    await notify_best_effort(
        f"interview scheduled for applicant {applicant.id}",
        _schedule_notice_steps(applicant, SlotKind.INTERVIEW, "scheduled", slot),
    )
    logger.info(f"Interview {slot.id} scheduled for applicant {applicant.id} at {datetime_iso}")
    return applicant, slot


async def reschedule_interview(
    db: AsyncSession,
    applicant_id: str,
    interview_id: str,
    body: SessionRequest,
    actor: AuthenticatedIdentity,
    now: datetime | None = None,
) -> tuple[Applicant, ScheduleSlot]:
    """
    Move an interview. Moving it to its current moment is allowed.

    Raises:
        SlotNotFoundError, SlotApplicantMismatchError, ScheduleConflictError
    """
    now = now or _utcnow()
    datetime_iso = _datetime_iso(body)

    applicant = await _load(db, applicant_id)
    slot = await _owned_slot(db, applicant, interview_id, SlotKind.INTERVIEW)
    await _ensure_free(db, datetime_iso, exclude_id=slot.id)

    _transition(applicant, ApplicantStatus.INTERVIEW_SCHEDULED, actor.uid, now)
    previous = slot.datetime_iso
    _apply_session(slot, body, datetime_iso)
    applicant.interview = repository.slot_snapshot(slot)
    _log(
        db,
        "reschedule_interview",
        applicant,
        actor,
        {"slot_id": slot.id, "from": previous, "datetime_iso": datetime_iso},
    )
    await _commit_schedule(db, datetime_iso)

    await notify_best_effort(
        f"interview rescheduled for applicant {applicant.id}",
        _schedule_notice_steps(applicant, SlotKind.INTERVIEW, "rescheduled", slot),
    )
    return applicant, slot


async def cancel_interview(
    db: AsyncSession,
    applicant_id: str,
    interview_id: str,
    actor: AuthenticatedIdentity,
    now: datetime | None = None,
) -> Applicant:
    """Delete the interview slot and send the applicant back to reviewing."""
    now = now or _utcnow()
    applicant = await _load(db, applicant_id)
    slot = await _owned_slot(db, applicant, interview_id, SlotKind.INTERVIEW)

    _transition(applicant, ApplicantStatus.REVIEWING, actor.uid, now)
    await repository.delete_slot(db, slot)
    applicant.interview = None
    _log(db, "cancel_interview", applicant, actor, {"slot_id": interview_id})

    await commit_then_notify(
        db,
        f"interview cancelled for applicant {applicant.id}",
        _schedule_notice_steps(applicant, SlotKind.INTERVIEW, "cancelled"),
    )
    logger.info(f"Interview {interview_id} cancelled for applicant {applicant.id}")
    return applicant


async def complete_interview(
    db: AsyncSession,
    applicant_id: str,
    interview_id: str,
    actor: AuthenticatedIdentity,
    now: datetime | None = None,
) -> Applicant:
    now = now or _utcnow()
    applicant = await _load(db, applicant_id)
    slot = await _owned_slot(db, applicant, interview_id, SlotKind.INTERVIEW)

    if applicant.status != ApplicantStatus.INTERVIEW_SCHEDULED:
        raise InvalidTransitionError(applicant.status, ApplicantStatus.INTERVIEW_COMPLETED)

    _transition(applicant, ApplicantStatus.INTERVIEW_COMPLETED, actor.uid, now)
    applicant.interview = {
        **(applicant.interview or repository.slot_snapshot(slot)),
        "completed": True,
        "completed_at": now.isoformat(),
    }
    _log(db, "complete_interview", applicant, actor, {"slot_id": slot.id})
    await db.commit()
    return applicant


# ============================================
# Admin: teaching demos
# ============================================


def _demo_slot_id(applicant: Applicant) -> str | None:
    return (applicant.demo_teaching or {}).get("slot_id")


async def schedule_demo(
    db: AsyncSession,
    applicant_id: str,
    body: DemoRequest,
    actor: AuthenticatedIdentity,
    now: datetime | None = None,
) -> tuple[Applicant, ScheduleSlot]:
    """
    Book a teaching demo after a completed interview.

    Raises:
        ApplicantValidationError: The date is before today (school time zone)
        ScheduleConflictError: Another session is booked at the same moment
    """
    now = now or _utcnow()
    _check_demo_date(body, now)
    datetime_iso = _datetime_iso(body)

    applicant = await _load(db, applicant_id)
    if _demo_slot_id(applicant) and not applicant.demo_teaching.get("completed"):
        raise SessionAlreadyScheduledError("teaching demo")

    await _ensure_free(db, datetime_iso)
    if not repository.can_transition(applicant.status, ApplicantStatus.DEMO_SCHEDULED):
        raise InvalidTransitionError(applicant.status, ApplicantStatus.DEMO_SCHEDULED)

    try:
        slot = await repository.create_slot(
            db,
            applicant_id=applicant.id,
            kind=SlotKind.DEMO,
            scheduled_date=body.scheduled_date,
            scheduled_time=body.scheduled_time,
            datetime_iso=datetime_iso,
            mode=body.mode,
            location=body.location,
            notes=body.notes,
            subject=body.subject,
            created_by=actor.uid,
        )
    except IntegrityError as e:
        await db.rollback()
        raise ScheduleConflictError(datetime_iso) from e

    applicant.demo_teaching = repository.slot_snapshot(slot)
    _transition(applicant, ApplicantStatus.DEMO_SCHEDULED, actor.uid, now)
    _log(
        db,
        "schedule_demo",
        applicant,
        actor,
        {"slot_id": slot.id, "datetime_iso": datetime_iso},
    )
    await _commit_schedule(db, datetime_iso)

    await notify_best_effort(
        f"demo scheduled for applicant {applicant.id}",
        _schedule_notice_steps(applicant, SlotKind.DEMO, "scheduled", slot),
    )
    logger.info(f"Demo {slot.id} scheduled for applicant {applicant.id} at {datetime_iso}")
    return applicant, slot


async def reschedule_demo(
    db: AsyncSession,
    applicant_id: str,
    body: DemoRequest,
    actor: AuthenticatedIdentity,
    now: datetime | None = None,
) -> tuple[Applicant, ScheduleSlot]:
    now = now or _utcnow()
    _check_demo_date(body, now)
    datetime_iso = _datetime_iso(body)

    applicant = await _load(db, applicant_id)
    slot = await _owned_slot(db, applicant, _demo_slot_id(applicant), SlotKind.DEMO)
    await _ensure_free(db, datetime_iso, exclude_id=slot.id)

    _transition(applicant, ApplicantStatus.DEMO_SCHEDULED, actor.uid, now)
    previous = slot.datetime_iso
    _apply_session(slot, body, datetime_iso)
    applicant.demo_teaching = repository.slot_snapshot(slot)
    _log(
        db,
        "reschedule_demo",
        applicant,
        actor,
        {"slot_id": slot.id, "from": previous, "datetime_iso": datetime_iso},
    )
    await _commit_schedule(db, datetime_iso)

    await notify_best_effort(
        f"demo rescheduled for applicant {applicant.id}",
        _schedule_notice_steps(applicant, SlotKind.DEMO, "rescheduled", slot),
    )
    return applicant, slot


async def cancel_demo(
    db: AsyncSession,
    applicant_id: str,
    actor: AuthenticatedIdentity,
    now: datetime | None = None,
) -> Applicant:
    """Delete the demo slot; the applicant returns to interview_completed."""
    now = now or _utcnow()
    applicant = await _load(db, applicant_id)
    slot = await _owned_slot(db, applicant, _demo_slot_id(applicant), SlotKind.DEMO)

    _transition(applicant, ApplicantStatus.INTERVIEW_COMPLETED, actor.uid, now)
    slot_id = slot.id
    await repository.delete_slot(db, slot)
    applicant.demo_teaching = None
    _log(db, "cancel_demo", applicant, actor, {"slot_id": slot_id})

    await commit_then_notify(
        db,
        f"demo cancelled for applicant {applicant.id}",
        _schedule_notice_steps(applicant, SlotKind.DEMO, "cancelled"),
    )
    return applicant


async def complete_demo(
    db: AsyncSession,
    applicant_id: str,
    actor: AuthenticatedIdentity,
    now: datetime | None = None,
) -> Applicant:
    now = now or _utcnow()
    applicant = await _load(db, applicant_id)
    if not _demo_slot_id(applicant):
        raise SlotNotFoundError()
    if applicant.status != ApplicantStatus.DEMO_SCHEDULED:
        raise InvalidTransitionError(applicant.status, ApplicantStatus.DEMO_COMPLETED)

    _transition(applicant, ApplicantStatus.DEMO_COMPLETED, actor.uid, now)
    applicant.demo_teaching = {
        **applicant.demo_teaching,
        "completed": True,
        "completed_at": now.isoformat(),
    }
    _log(db, "complete_demo", applicant, actor, {"slot_id": _demo_slot_id(applicant)})
    await db.commit()
    return applicant


# ============================================
# Admin: decision and archive
# ============================================


async def record_final_decision(
    db: AsyncSession,
    applicant_id: str,
    decision: FinalDecision,
    actor: AuthenticatedIdentity,
    reason: str | None = None,
    now: datetime | None = None,
) -> Applicant:
    """
    Record the one final decision for an applicant.

    approved: onboarding, deletion_date = now + retention when approved
        applicants are auto-deleted
    rejected: rejected, deletion_date = now + retention

    Raises:
        DecisionAlreadyRecordedError: A decision exists
        InvalidTransitionError: The applicant has not been reviewed yet
    """
    now = now or _utcnow()
    applicant = await _load(db, applicant_id)

    if applicant.final_decision is not None:
        raise DecisionAlreadyRecordedError(applicant.final_decision)

    retention = timedelta(days=settings.applicant_retention_days)
    approved = decision == FinalDecision.APPROVED

    if approved:
        _transition(applicant, ApplicantStatus.ONBOARDING, actor.uid, now)
        applicant.archived = False
        applicant.deletion_date = (
            now + retention if settings.approved_applicant_auto_delete else None
        )
    else:
        _transition(applicant, ApplicantStatus.REJECTED, actor.uid, now)
        applicant.deletion_date = now + retention

    applicant.final_decision = decision
    applicant.final_decision_date = now
    applicant.decision_reason = reason

    _log(
        db,
        f"{applicant.kind.value}_{decision.value}",
        applicant,
        actor,
        {
            "decision": decision.value,
            "reason": reason,
            "deletion_date": applicant.deletion_date.isoformat()
            if applicant.deletion_date
            else None,
        },
    )

    if approved:
        title = "Application approved"
        message = "Congratulations! Your application has been approved. Onboarding details will follow."
    else:
        title = "Application update"
        message = "Thank you for applying. We are unable to move forward with your application."

    await commit_then_notify(
        db,
        f"final decision for applicant {applicant.id}",
        [
            (
                "notification",
                lambda: _notify_applicant(
                    applicant_id, title, message, NotificationType.PROGRESS, "decision"
                ),
            ),
            (
                "email",
                lambda: send_decision_email(
                    to_email=applicant.email,
                    applicant_name=applicant.full_name,
                    approved=approved,
                    reason=reason,
                ),
            ),
        ],
    )
    logger.info(f"Applicant {applicant.id} {decision.value} by {actor.uid}")
    return applicant


async def archive_applicant(
    db: AsyncSession,
    applicant_id: str,
    actor: AuthenticatedIdentity,
    now: datetime | None = None,
) -> Applicant:
    """Mark onboarding complete. The deletion date is left as it was."""
    now = now or _utcnow()
    applicant = await _load(db, applicant_id)

    if applicant.status != ApplicantStatus.ONBOARDING:
        raise InvalidTransitionError(applicant.status, ApplicantStatus.ARCHIVED)

    _transition(applicant, ApplicantStatus.ARCHIVED, actor.uid, now)
    applicant.archived = True
    applicant.archived_at = now
    _log(db, "applicant_archived", applicant, actor)
    await db.commit()

    logger.info(f"Applicant {applicant.id} archived by {actor.uid}")
    return applicant


async def undo_archive(
    db: AsyncSession,
    applicant_id: str,
    actor: AuthenticatedIdentity,
    now: datetime | None = None,
) -> Applicant:
    now = now or _utcnow()
    applicant = await _load(db, applicant_id)

    if applicant.status != ApplicantStatus.ARCHIVED:
        raise InvalidTransitionError(applicant.status, ApplicantStatus.ONBOARDING)

    _transition(applicant, ApplicantStatus.ONBOARDING, actor.uid, now)
    applicant.archived = False
    applicant.archived_at = None
    _log(db, "applicant_unarchived", applicant, actor)
    await db.commit()
    return applicant
