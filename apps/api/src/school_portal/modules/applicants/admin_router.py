"""
Applicants Admin Router

API endpoints for school administrators to move applicants through the
hiring pipeline. All endpoints require an admin bearer token.

Endpoints:
- GET /applicants - List applicants with filters and pagination
- GET /applicants/{id} - Applicant details
- POST /applicants/{id}/start-review - submitted -> reviewing
- POST /applicants/{id}/approve | reject - Final decision
- POST /applicants/{id}/archive - Onboarding complete
- POST /applicants/{id}/archive/undo - Back to onboarding
- POST /applicants/{applicant_id}/interview - Schedule an interview
- PUT /applicants/{applicant_id}/interview/{interview_id} - Reschedule
- DELETE /applicants/{applicant_id}/interview/{interview_id} - Cancel
- POST /applicants/{applicant_id}/interview/{interview_id}/complete
- GET /interviews/conflicts?datetime_iso=... - Sessions at a moment
- POST /teacher-applicants/{id}/schedule-demo, PUT reschedule-demo,
  DELETE cancel-demo, POST complete-demo, POST final-decision
- POST /applicants/{id}/messages - Message the applicant (portal + e-mail)
- GET /applicants/{id}/messages - The message thread with an applicant

Security:
- Admin role required everywhere
- Action endpoints are rate limited per admin
- Every action is written to the activity log by the service layer
"""

import logging

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from school_portal.core.auth import AuthenticatedIdentity, get_current_admin
from school_portal.core.database import get_db
from school_portal.core.errors import ServiceError, internal_error, raise_http_error
from school_portal.core.rate_limit import enforce_rate_limit
from school_portal.modules.applicants import service
from school_portal.modules.applicants.models import (
    Applicant,
    ApplicantKind,
    ApplicantStatus,
    FinalDecision,
)
from school_portal.modules.applicants.schemas import (
    ApplicantActionResponse,
    ApplicantDetailResponse,
    ApplicantListItem,
    ApplicantListResponse,
    ApplicantMessageRequest,
    ApplicantMessageResponse,
    ConflictListResponse,
    DecisionRequest,
    DemoRequest,
    NotificationItem,
    NotificationListResponse,
    RejectRequest,
    ScheduleResponse,
    SessionRequest,
    SlotItem,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================
# Rate Limiting Configuration
# ============================================

RATE_LIMIT_DECISION = (10, 60)  # 10 decisions per minute
RATE_LIMIT_SCHEDULE = (30, 60)  # 30 scheduling changes per minute
RATE_LIMIT_TRANSITION = (30, 60)  # 30 other transitions per minute
RATE_LIMIT_MESSAGE = (30, 60)  # 30 applicant messages per minute


async def _check_admin_rate_limit(
    admin: AuthenticatedIdentity,
    action: str,
    limit: int,
    window_seconds: int,
) -> None:
    await enforce_rate_limit(f"admin:{action}:{admin.uid}", limit, window_seconds)


def _action_response(applicant: Applicant, message: str) -> ApplicantActionResponse:
    return ApplicantActionResponse(
        applicant=ApplicantDetailResponse.model_validate(applicant),
        message=message,
    )


def _schedule_response(result) -> ScheduleResponse:
    applicant, slot = result
    return ScheduleResponse(
        slot=SlotItem.model_validate(slot),
        applicant=ApplicantDetailResponse.model_validate(applicant),
    )


# ============================================
# Listing
# ============================================


@router.get(
    "/applicants",
    response_model=ApplicantListResponse,
    summary="List Applicants",
    description="""
List applicants, newest first.

**Filters:**
- `status`: one lifecycle status
- `kind`: teacher or student
- `search`: matches first name, last name or email
- `include_archived`: include onboarded (archived) applicants

**Access:** Admin only
""",
)
async def list_applicants(
    status_filter: ApplicantStatus | None = Query(None, alias="status"),
    kind: ApplicantKind | None = Query(None),
    search: str | None = Query(None, max_length=100),
    include_archived: bool = Query(False),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    admin: AuthenticatedIdentity = Depends(get_current_admin),
) -> ApplicantListResponse:
    try:
        items, total = await service.list_applicants(
            db,
            status=status_filter,
            kind=kind,
            search=search,
            include_archived=include_archived,
            limit=limit,
            offset=offset,
        )
    except Exception as e:
        raise internal_error(e, "listing applicants") from e

    return ApplicantListResponse(
        items=[ApplicantListItem.model_validate(item) for item in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get(
    "/applicants/{applicant_id}",
    response_model=ApplicantDetailResponse,
    summary="Get Applicant Details",
)
async def get_applicant(
    applicant_id: str,
    db: AsyncSession = Depends(get_db),
    admin: AuthenticatedIdentity = Depends(get_current_admin),
) -> ApplicantDetailResponse:
    try:
        applicant = await service.get_applicant(db, applicant_id)
    except ServiceError as e:
        raise_http_error(e)
    except Exception as e:
        raise internal_error(e, "getting applicant") from e

    return ApplicantDetailResponse.model_validate(applicant)


@router.get(
    "/interviews/conflicts",
    response_model=ConflictListResponse,
    summary="Sessions At A Moment",
    description="""
Sessions (interviews and demos) booked at the moment `datetime_iso` names. At most 50.

Any ISO-8601 rendering is accepted (`Z`, an offset, fractional seconds).
A value without an offset is read in the school time zone.
""",
)
async def list_conflicts(
    datetime_iso: str = Query(..., min_length=1, max_length=40),
    db: AsyncSession = Depends(get_db),
    admin: AuthenticatedIdentity = Depends(get_current_admin),
) -> ConflictListResponse:
    try:
        key, slots = await service.list_conflicts(db, datetime_iso)
    except ServiceError as e:
        raise_http_error(e)
    except Exception as e:
        raise internal_error(e, "listing schedule conflicts") from e

    return ConflictListResponse(
        datetime_iso=key,
        count=len(slots),
        items=[SlotItem.model_validate(slot) for slot in slots],
    )


# ============================================
# Review
# ============================================


@router.post(
    "/applicants/{applicant_id}/start-review",
    response_model=ApplicantActionResponse,
    summary="Start Review",
    responses={
        404: {"description": "Applicant not found"},
        409: {"description": "Applicant is not in submitted status"},
    },
)
async def start_review(
    applicant_id: str,
    db: AsyncSession = Depends(get_db),
    admin: AuthenticatedIdentity = Depends(get_current_admin),
) -> ApplicantActionResponse:
    await _check_admin_rate_limit(admin, "start_review", *RATE_LIMIT_TRANSITION)

    try:
        applicant = await service.start_review(db, applicant_id, admin)
    except ServiceError as e:
        raise_http_error(e)
    except Exception as e:
        raise internal_error(e, "starting review") from e

    return _action_response(applicant, "Applicant is now under review")


# ============================================
# Interviews
# ============================================


@router.post(
    "/applicants/{applicant_id}/interview",
    response_model=ScheduleResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Schedule Interview",
    description="""
Book an interview for the applicant.

Date and time are read in the school time zone. No two sessions
(interviews or demos) may share the same moment.

**Effects:**
- A schedule slot is created and copied onto the applicant
- Status changes to `interview_scheduled`
- The applicant is notified (best-effort)

**Access:** Admin only
""",
    responses={
        404: {"description": "Applicant not found"},
        409: {"description": "Schedule conflict or invalid status transition"},
    },
)
async def schedule_interview(
    applicant_id: str,
    body: SessionRequest,
    db: AsyncSession = Depends(get_db),
    admin: AuthenticatedIdentity = Depends(get_current_admin),
) -> ScheduleResponse:
    await _check_admin_rate_limit(admin, "schedule", *RATE_LIMIT_SCHEDULE)

    try:
        result = await service.schedule_interview(db, applicant_id, body, admin)
    except ServiceError as e:
        raise_http_error(e)
    except Exception as e:
        raise internal_error(e, "scheduling interview") from e

    return _schedule_response(result)


@router.put(
    "/applicants/{applicant_id}/interview/{interview_id}",
    response_model=ScheduleResponse,
    summary="Reschedule Interview",
    responses={
        400: {"description": "Interview belongs to another applicant"},
        404: {"description": "Applicant or interview not found"},
        409: {"description": "Schedule conflict"},
    },
)
async def reschedule_interview(
    applicant_id: str,
    interview_id: str,
    body: SessionRequest,
    db: AsyncSession = Depends(get_db),
    admin: AuthenticatedIdentity = Depends(get_current_admin),
) -> ScheduleResponse:
    await _check_admin_rate_limit(admin, "schedule", *RATE_LIMIT_SCHEDULE)

    try:
        result = await service.reschedule_interview(db, applicant_id, interview_id, body, admin)
    except ServiceError as e:
        raise_http_error(e)
    except Exception as e:
        raise internal_error(e, "rescheduling interview") from e

    return _schedule_response(result)


@router.delete(
    "/applicants/{applicant_id}/interview/{interview_id}",
    response_model=ApplicantActionResponse,
    summary="Cancel Interview",
)
async def cancel_interview(
    applicant_id: str,
    interview_id: str,
    db: AsyncSession = Depends(get_db),
    admin: AuthenticatedIdentity = Depends(get_current_admin),
) -> ApplicantActionResponse:
    """Delete the interview; the applicant goes back to reviewing."""
    await _check_admin_rate_limit(admin, "schedule", *RATE_LIMIT_SCHEDULE)

    try:
        applicant = await service.cancel_interview(db, applicant_id, interview_id, admin)
    except ServiceError as e:
        raise_http_error(e)
    except Exception as e:
        raise internal_error(e, "cancelling interview") from e

    return _action_response(applicant, "Interview cancelled")


@router.post(
    "/applicants/{applicant_id}/interview/{interview_id}/complete",
    response_model=ApplicantActionResponse,
    summary="Complete Interview",
)
async def complete_interview(
    applicant_id: str,
    interview_id: str,
    db: AsyncSession = Depends(get_db),
    admin: AuthenticatedIdentity = Depends(get_current_admin),
) -> ApplicantActionResponse:
    await _check_admin_rate_limit(admin, "transition", *RATE_LIMIT_TRANSITION)

    try:
        applicant = await service.complete_interview(db, applicant_id, interview_id, admin)
    except ServiceError as e:
        raise_http_error(e)
    except Exception as e:
        raise internal_error(e, "completing interview") from e

    return _action_response(applicant, "Interview marked as completed")


# ============================================
# Teaching demos
# ============================================


@router.post(
    "/teacher-applicants/{applicant_id}/schedule-demo",
    response_model=ScheduleResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Schedule Teaching Demo",
    description="""
Book a teaching demo after a completed interview.

**Requirements:**
- Status `interview_completed`
- Date not before today in the school time zone
- No other session at the same moment

**Access:** Admin only
""",
)
async def schedule_demo(
    applicant_id: str,
    body: DemoRequest,
    db: AsyncSession = Depends(get_db),
    admin: AuthenticatedIdentity = Depends(get_current_admin),
) -> ScheduleResponse:
    await _check_admin_rate_limit(admin, "schedule", *RATE_LIMIT_SCHEDULE)

    try:
        result = await service.schedule_demo(db, applicant_id, body, admin)
    except ServiceError as e:
        raise_http_error(e)
    except Exception as e:
        raise internal_error(e, "scheduling demo") from e

    return _schedule_response(result)


@router.put(
    "/teacher-applicants/{applicant_id}/reschedule-demo",
    response_model=ScheduleResponse,
    summary="Reschedule Teaching Demo",
)
async def reschedule_demo(
    applicant_id: str,
    body: DemoRequest,
    db: AsyncSession = Depends(get_db),
    admin: AuthenticatedIdentity = Depends(get_current_admin),
) -> ScheduleResponse:
    await _check_admin_rate_limit(admin, "schedule", *RATE_LIMIT_SCHEDULE)

    try:
        result = await service.reschedule_demo(db, applicant_id, body, admin)
    except ServiceError as e:
        raise_http_error(e)
    except Exception as e:
        raise internal_error(e, "rescheduling demo") from e

    return _schedule_response(result)


@router.delete(
    "/teacher-applicants/{applicant_id}/cancel-demo",
    response_model=ApplicantActionResponse,
    summary="Cancel Teaching Demo",
)
async def cancel_demo(
    applicant_id: str,
    db: AsyncSession = Depends(get_db),
    admin: AuthenticatedIdentity = Depends(get_current_admin),
) -> ApplicantActionResponse:
    await _check_admin_rate_limit(admin, "schedule", *RATE_LIMIT_SCHEDULE)

    try:
        applicant = await service.cancel_demo(db, applicant_id, admin)
    except ServiceError as e:
        raise_http_error(e)
    except Exception as e:
        raise internal_error(e, "cancelling demo") from e

    return _action_response(applicant, "Teaching demo cancelled")


@router.post(
    "/teacher-applicants/{applicant_id}/complete-demo",
    response_model=ApplicantActionResponse,
    summary="Complete Teaching Demo",
)
async def complete_demo(
    applicant_id: str,
    db: AsyncSession = Depends(get_db),
    admin: AuthenticatedIdentity = Depends(get_current_admin),
) -> ApplicantActionResponse:
    await _check_admin_rate_limit(admin, "transition", *RATE_LIMIT_TRANSITION)

    try:
        applicant = await service.complete_demo(db, applicant_id, admin)
    except ServiceError as e:
        raise_http_error(e)
    except Exception as e:
        raise internal_error(e, "completing demo") from e

    return _action_response(applicant, "Teaching demo marked as completed")


# ============================================
# Decision and archive
# ============================================


async def _decide(
    db: AsyncSession,
    applicant_id: str,
    decision: FinalDecision,
    reason: str | None,
    admin: AuthenticatedIdentity,
) -> ApplicantActionResponse:
    await _check_admin_rate_limit(admin, "decision", *RATE_LIMIT_DECISION)

    try:
        applicant = await service.record_final_decision(
            db, applicant_id, decision, admin, reason=reason
        )
    except ServiceError as e:
        raise_http_error(e)
    except Exception as e:
        raise internal_error(e, f"recording {decision.value} decision") from e

    return _action_response(applicant, f"Applicant {decision.value}")


@router.post(
    "/teacher-applicants/{applicant_id}/final-decision",
    response_model=ApplicantActionResponse,
    summary="Record Final Decision",
    description="""
Record the final decision for an applicant. Only one decision is allowed.

**Effects:**
- `approved`: status `onboarding`, deletion date set 30 days out when
  approved applicants are auto-deleted
- `rejected`: status `rejected`, deletion date set 30 days out
- The applicant is notified and e-mailed (best-effort)

**Access:** Admin only
""",
    responses={
        404: {"description": "Applicant not found"},
        409: {"description": "Decision already recorded or applicant not reviewed yet"},
    },
)
async def final_decision(
    applicant_id: str,
    body: DecisionRequest,
    db: AsyncSession = Depends(get_db),
    admin: AuthenticatedIdentity = Depends(get_current_admin),
) -> ApplicantActionResponse:
    return await _decide(db, applicant_id, body.decision, body.reason, admin)


@router.post(
    "/applicants/{applicant_id}/approve",
    response_model=ApplicantActionResponse,
    summary="Approve Applicant",
)
async def approve_applicant(
    applicant_id: str,
    db: AsyncSession = Depends(get_db),
    admin: AuthenticatedIdentity = Depends(get_current_admin),
) -> ApplicantActionResponse:
    return await _decide(db, applicant_id, FinalDecision.APPROVED, None, admin)


@router.post(
    "/applicants/{applicant_id}/reject",
    response_model=ApplicantActionResponse,
    summary="Reject Applicant",
)
async def reject_applicant(
    applicant_id: str,
    body: RejectRequest | None = None,
    db: AsyncSession = Depends(get_db),
    admin: AuthenticatedIdentity = Depends(get_current_admin),
) -> ApplicantActionResponse:
    reason = body.reason if body else None
    return await _decide(db, applicant_id, FinalDecision.REJECTED, reason, admin)


@router.post(
    "/applicants/{applicant_id}/archive",
    response_model=ApplicantActionResponse,
    summary="Archive Applicant",
)
async def archive_applicant(
    applicant_id: str,
    db: AsyncSession = Depends(get_db),
    admin: AuthenticatedIdentity = Depends(get_current_admin),
) -> ApplicantActionResponse:
    """Mark onboarding as complete."""
    await _check_admin_rate_limit(admin, "transition", *RATE_LIMIT_TRANSITION)

    try:
        applicant = await service.archive_applicant(db, applicant_id, admin)
    except ServiceError as e:
        raise_http_error(e)
    except Exception as e:
        raise internal_error(e, "archiving applicant") from e

    return _action_response(applicant, "Applicant archived")


@router.post(
    "/applicants/{applicant_id}/archive/undo",
    response_model=ApplicantActionResponse,
    summary="Undo Archive",
)
async def undo_archive(
    applicant_id: str,
    db: AsyncSession = Depends(get_db),
    admin: AuthenticatedIdentity = Depends(get_current_admin),
) -> ApplicantActionResponse:
    await _check_admin_rate_limit(admin, "transition", *RATE_LIMIT_TRANSITION)

    try:
        applicant = await service.undo_archive(db, applicant_id, admin)
    except ServiceError as e:
        raise_http_error(e)
    except Exception as e:
        raise internal_error(e, "restoring applicant") from e

    return _action_response(applicant, "Applicant moved back to onboarding")


# ============================================
# Messages
# ============================================


@router.post(
    "/applicants/{applicant_id}/messages",
    response_model=ApplicantMessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Message Applicant",
    description="""
Post a message to the applicant's portal and e-mail it to them.

The message is kept even when the e-mail fails; `delivered` reports which.
""",
)
async def message_applicant(
    applicant_id: str,
    body: ApplicantMessageRequest,
    db: AsyncSession = Depends(get_db),
    admin: AuthenticatedIdentity = Depends(get_current_admin),
) -> ApplicantMessageResponse:
    await _check_admin_rate_limit(admin, "message", *RATE_LIMIT_MESSAGE)

    try:
        message, delivered = await service.send_message_to_applicant(
            db, applicant_id, body.subject, body.body, admin
        )
    except ServiceError as e:
        raise_http_error(e)
    except Exception as e:
        raise internal_error(e, "messaging applicant") from e

    return ApplicantMessageResponse(
        message=NotificationItem.model_validate(message),
        delivered=delivered,
    )


@router.get(
    "/applicants/{applicant_id}/messages",
    response_model=NotificationListResponse,
    summary="Applicant Message Thread",
)
async def applicant_messages(
    applicant_id: str,
    db: AsyncSession = Depends(get_db),
    admin: AuthenticatedIdentity = Depends(get_current_admin),
) -> NotificationListResponse:
    try:
        messages = await service.list_applicant_messages(db, applicant_id)
    except ServiceError as e:
        raise_http_error(e)
    except Exception as e:
        raise internal_error(e, "listing applicant messages") from e

    return NotificationListResponse(
        items=[NotificationItem.model_validate(m) for m in messages]
    )
