"""
Applicants Repository

Database operations for applicants, schedule slots and applicant
notifications. Functions add / flush; the service owns the transaction
and decides when to commit.

Design Principles:
- All queries are parameterized
- Row locks (FOR UPDATE) where a read decides a write
- Every status assignment goes through apply_transition
"""

from datetime import UTC, date, datetime, time
from typing import Any
from zoneinfo import ZoneInfo

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    Applicant,
    ApplicantKind,
    ApplicantNotification,
    ApplicantStatus,
    NotificationType,
    ScheduleSlot,
    SlotKind,
)

# Valid status transitions. A same-status write (reschedule) is always allowed.
VALID_STATUS_TRANSITIONS: dict[ApplicantStatus, set[ApplicantStatus]] = {
    ApplicantStatus.PENDING: {
        ApplicantStatus.SUBMITTED,  # E-mail confirmed
    },
    ApplicantStatus.SUBMITTED: {
        ApplicantStatus.REVIEWING,
        ApplicantStatus.INTERVIEW_SCHEDULED,
    },
    ApplicantStatus.REVIEWING: {
        ApplicantStatus.INTERVIEW_SCHEDULED,
        ApplicantStatus.ONBOARDING,  # Fast-track approval
        ApplicantStatus.REJECTED,
    },
    ApplicantStatus.INTERVIEW_SCHEDULED: {
        ApplicantStatus.INTERVIEW_COMPLETED,
        ApplicantStatus.REVIEWING,  # Interview cancelled
        ApplicantStatus.ONBOARDING,
        ApplicantStatus.REJECTED,
    },
    ApplicantStatus.INTERVIEW_COMPLETED: {
        ApplicantStatus.DEMO_SCHEDULED,
        ApplicantStatus.ONBOARDING,
        ApplicantStatus.REJECTED,
    },
    ApplicantStatus.DEMO_SCHEDULED: {
        ApplicantStatus.DEMO_COMPLETED,
        ApplicantStatus.INTERVIEW_COMPLETED,  # Demo cancelled
        ApplicantStatus.ONBOARDING,
        ApplicantStatus.REJECTED,
    },
    ApplicantStatus.DEMO_COMPLETED: {
        ApplicantStatus.ONBOARDING,
        ApplicantStatus.REJECTED,
    },
    ApplicantStatus.ONBOARDING: {
        ApplicantStatus.ARCHIVED,  # Onboarding complete
    },
    ApplicantStatus.ARCHIVED: {
        ApplicantStatus.ONBOARDING,  # Undo archive
    },
    # Terminal
    ApplicantStatus.REJECTED: set(),
}


class InvalidStatusTransitionError(ValueError):
    """Raised when an invalid status transition is attempted."""

    def __init__(
        self,
        current_status: ApplicantStatus,
        new_status: ApplicantStatus,
    ):
        self.current_status = current_status
        self.new_status = new_status
        valid_transitions = VALID_STATUS_TRANSITIONS.get(current_status, set())
        super().__init__(
            f"Invalid status transition: {current_status.value} -> {new_status.value}. "
            f"Valid transitions: {sorted(s.value for s in valid_transitions)}"
        )


def can_transition(current: ApplicantStatus, new: ApplicantStatus) -> bool:
    return new == current or new in VALID_STATUS_TRANSITIONS.get(current, set())


def apply_transition(
    applicant: Applicant,
    new_status: ApplicantStatus,
    actor_uid: str | None,
    at: datetime,
) -> None:
    """
    Move an applicant to new_status and stamp who did it.

    Raises:
        InvalidStatusTransitionError: If the move is not in the transition map
    """
    if not can_transition(applicant.status, new_status):
        raise InvalidStatusTransitionError(applicant.status, new_status)

    applicant.status = new_status
    applicant.status_updated_at = at
    applicant.status_updated_by = actor_uid


def normalize_datetime_iso(scheduled_date: date, scheduled_time: str, tz: ZoneInfo) -> str:
    """
    Build the canonical key for a session.

    The wall-clock date and "HH:MM" time are read in the school time zone
    and rendered as a UTC ISO-8601 string, so the same moment always
    produces the same key.
    """
    hour, minute = (int(part) for part in scheduled_time.split(":"))
    local = datetime.combine(scheduled_date, time(hour, minute), tzinfo=tz)
    return local.astimezone(UTC).isoformat()


def canonical_datetime_iso(value: str, tz: ZoneInfo) -> str:
    """
    Turn any ISO-8601 rendering of a moment into its schedule key.

    Accepts "Z" and fractional seconds (as sent by browsers) and an offset
    whose "+" arrived as a space from an unencoded query string. A value
    without an offset is read in the school time zone.

    Raises:
        ValueError: If value is not an ISO-8601 date and time
    """
    text = value.strip()
    if len(text) > 19 and text[-6] == " " and text[-3] == ":":
        text = f"{text[:-6]}+{text[-5:]}"
    if text.endswith(("Z", "z")):
        text = f"{text[:-1]}+00:00"
    moment = datetime.fromisoformat(text)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=tz)
    return moment.astimezone(UTC).replace(microsecond=0).isoformat()


# ============================================
# Applicants
# ============================================


async def create_applicant(
    db: AsyncSession,
    *,
    first_name: str,
    last_name: str,
    email: str,
    phone: str | None,
    kind: ApplicantKind,
    position: str | None,
    form_data: dict[str, Any] | None,
) -> Applicant:
    """Create a pending applicant."""
    applicant = Applicant(
        first_name=first_name,
        last_name=last_name,
        email=email.lower(),
        phone=phone,
        kind=kind,
        position=position,
        form_data=form_data,
        status=ApplicantStatus.PENDING,
        documents=[],
    )
    db.add(applicant)
    await db.flush()
    return applicant


async def get_by_id(
    db: AsyncSession,
    applicant_id: str,
    for_update: bool = False,
) -> Applicant | None:
    """
    Get applicant by ID, optionally locking the row.

    A locking read overwrites any copy already in the session, so callers
    see the committed row and not an earlier unlocked read.
    """
    stmt = select(Applicant).where(Applicant.id == applicant_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_by_uid(db: AsyncSession, uid: str) -> Applicant | None:
    result = await db.execute(select(Applicant).where(Applicant.uid == uid))
    return result.scalars().first()


async def get_active_by_email(db: AsyncSession, email: str) -> Applicant | None:
    """Find an applicant with this e-mail that has no final decision yet."""
    result = await db.execute(
        select(Applicant).where(
            Applicant.email == email.lower(),
            Applicant.final_decision.is_(None),
        )
    )
    return result.scalars().first()


async def list_applicants(
    db: AsyncSession,
    *,
    status: ApplicantStatus | None = None,
    kind: ApplicantKind | None = None,
    search: str | None = None,
    include_archived: bool = False,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[Applicant], int]:
    """List applicants newest first. Returns (items, total)."""
    conditions = []
    if status:
        conditions.append(Applicant.status == status)
    if kind:
        conditions.append(Applicant.kind == kind)
    if not include_archived and status != ApplicantStatus.ARCHIVED:
        conditions.append(Applicant.archived.is_(False))
    if search:
        pattern = f"%{search}%"
        conditions.append(
            or_(
                Applicant.first_name.ilike(pattern),
                Applicant.last_name.ilike(pattern),
                Applicant.email.ilike(pattern),
            )
        )

    total = await db.scalar(select(func.count()).select_from(Applicant).where(*conditions))
    result = await db.execute(
        select(Applicant)
        .where(*conditions)
        .order_by(Applicant.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all()), total or 0


# ============================================
# Schedule slots
# ============================================


async def get_slot(
    db: AsyncSession,
    slot_id: str,
    for_update: bool = False,
) -> ScheduleSlot | None:
    stmt = select(ScheduleSlot).where(ScheduleSlot.id == slot_id)
    if for_update:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def find_slot_conflict(
    db: AsyncSession,
    datetime_iso: str,
    exclude_id: str | None = None,
) -> ScheduleSlot | None:
    """
    Find another booked session at exactly datetime_iso.

    The matching row is locked so a concurrent reschedule cannot move it
    while this transaction decides.
    """
    stmt = select(ScheduleSlot).where(ScheduleSlot.datetime_iso == datetime_iso)
    if exclude_id is not None:
        stmt = stmt.where(ScheduleSlot.id != exclude_id)
    result = await db.execute(stmt.limit(1).with_for_update())
    return result.scalar_one_or_none()


async def list_slots_at(
    db: AsyncSession,
    datetime_iso: str,
    limit: int = 50,
) -> list[ScheduleSlot]:
    """Sessions booked at exactly datetime_iso."""
    result = await db.execute(
        select(ScheduleSlot).where(ScheduleSlot.datetime_iso == datetime_iso).limit(limit)
    )
    return list(result.scalars().all())


async def create_slot(
    db: AsyncSession,
    *,
    applicant_id: str,
    kind: SlotKind,
    scheduled_date: date,
    scheduled_time: str,
    datetime_iso: str,
    mode: str | None = None,
    location: str | None = None,
    notes: str | None = None,
    subject: str | None = None,
    created_by: str | None = None,
) -> ScheduleSlot:
    slot = ScheduleSlot(
        applicant_id=applicant_id,
        kind=kind,
        scheduled_date=scheduled_date,
        scheduled_time=scheduled_time,
        datetime_iso=datetime_iso,
        mode=mode,
        location=location,
        notes=notes,
        subject=subject,
        created_by=created_by,
    )
    db.add(slot)
    await db.flush()
    return slot


async def delete_slot(db: AsyncSession, slot: ScheduleSlot) -> None:
    await db.delete(slot)
    await db.flush()


def slot_snapshot(slot: ScheduleSlot) -> dict[str, Any]:
    """The copy of a slot embedded on the applicant row."""
    snapshot: dict[str, Any] = {
        "slot_id": slot.id,
        "date": slot.scheduled_date.isoformat(),
        "time": slot.scheduled_time,
        "datetime_iso": slot.datetime_iso,
        "mode": slot.mode,
        "location": slot.location,
        "notes": slot.notes,
        "completed": False,
        "completed_at": None,
    }
    if slot.kind == SlotKind.DEMO:
        snapshot["subject"] = slot.subject
    return snapshot


# ============================================
# Notifications
# ============================================


def add_notification(
    db: AsyncSession,
    applicant_id: str,
    title: str,
    message: str,
    type: NotificationType = NotificationType.INFO,
    category: str | None = None,
    from_admin: bool = True,
) -> ApplicantNotification:
    notification = ApplicantNotification(
        applicant_id=applicant_id,
        title=title,
        message=message,
        type=type,
        category=category,
        from_admin=from_admin,
    )
    db.add(notification)
    return notification


async def list_notifications(
    db: AsyncSession,
    applicant_id: str,
    limit: int = 50,
    category: str | None = None,
) -> list[ApplicantNotification]:
    stmt = select(ApplicantNotification).where(
        ApplicantNotification.applicant_id == applicant_id
    )
    if category is not None:
        stmt = stmt.where(ApplicantNotification.category == category)
    result = await db.execute(
        stmt
        .order_by(ApplicantNotification.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def get_notification(
    db: AsyncSession,
    applicant_id: str,
    notification_id: str,
) -> ApplicantNotification | None:
    """Get one of an applicant's notifications; another applicant's id finds nothing."""
    result = await db.execute(
        select(ApplicantNotification).where(
            ApplicantNotification.id == notification_id,
            ApplicantNotification.applicant_id == applicant_id,
        )
    )
    return result.scalar_one_or_none()


async def count_unread_notifications(db: AsyncSession, applicant_id: str) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(ApplicantNotification)
        .where(
            ApplicantNotification.applicant_id == applicant_id,
            ApplicantNotification.is_read.is_(False),
        )
    )
    return result.scalar_one()


async def mark_all_notifications_read(db: AsyncSession, applicant_id: str) -> int:
    """Mark every unread notification read. Returns how many changed."""
    result = await db.execute(
        update(ApplicantNotification)
        .where(
            ApplicantNotification.applicant_id == applicant_id,
            ApplicantNotification.is_read.is_(False),
        )
        .values(is_read=True)
    )
    return result.rowcount or 0
