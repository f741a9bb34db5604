"""
Users Router

Admin endpoints for account management.

Endpoints:
- GET /users - List accounts
- POST /users/{user_id}/archive - Archive an account
- POST /users/{user_id}/unarchive - Restore an archived account
- DELETE /users/{user_id} - Permanently delete an archived account
- POST /users/admins/send-otp - Start creating an admin (code e-mailed)
- POST /users/admins/resend-otp - Resend the admin creation code
- POST /users/admins/verify-otp - Finish creating the admin

Security:
- All endpoints require an admin bearer token
- Admin action endpoints are rate limited per admin
"""

import logging

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from school_portal.core.auth import AuthenticatedIdentity, get_current_admin
from school_portal.core.database import get_db
from school_portal.core.errors import ServiceError, internal_error, raise_http_error
from school_portal.core.otp import OtpIssuer, get_admin_creation_otp
from school_portal.core.rate_limit import enforce_rate_limit
from school_portal.modules.users import service
from school_portal.modules.users.models import UserRole
from school_portal.modules.users.schemas import (
    AdminInviteRequest,
    AdminInviteResendRequest,
    AdminInviteResponse,
    AdminInviteVerifyRequest,
    UserActionResponse,
    UserItem,
    UserListResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()

RATE_LIMIT_USER_ACTIONS = (30, 60)  # 30 archive/delete actions per minute
RATE_LIMIT_ADMIN_INVITES = (10, 3600)  # 10 invitations per hour


@router.get("", response_model=UserListResponse, summary="List Users")
async def list_users(
    role: UserRole | None = Query(None),
    archived: bool | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    admin: AuthenticatedIdentity = Depends(get_current_admin),
) -> UserListResponse:
    try:
        users, total = await service.list_users(
            db, role=role, archived=archived, limit=limit, offset=offset
        )
    except Exception as e:
        raise internal_error(e, "listing users") from e

    return UserListResponse(
        items=[UserItem.model_validate(user) for user in users],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post("/{user_id}/archive", response_model=UserActionResponse, summary="Archive User")
async def archive_user(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    admin: AuthenticatedIdentity = Depends(get_current_admin),
) -> UserActionResponse:
    await enforce_rate_limit(f"admin:user_action:{admin.uid}", *RATE_LIMIT_USER_ACTIONS)
    try:
        user = await service.archive_user(db, user_id, admin)
    except ServiceError as e:
        raise_http_error(e)
    except Exception as e:
        raise internal_error(e, f"archiving user {user_id}") from e

    return UserActionResponse(user=UserItem.model_validate(user), message="Account archived")


@router.post("/{user_id}/unarchive", response_model=UserActionResponse, summary="Unarchive User")
async def unarchive_user(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    admin: AuthenticatedIdentity = Depends(get_current_admin),
) -> UserActionResponse:
    await enforce_rate_limit(f"admin:user_action:{admin.uid}", *RATE_LIMIT_USER_ACTIONS)
    try:
        user = await service.unarchive_user(db, user_id, admin)
    except ServiceError as e:
        raise_http_error(e)
    except Exception as e:
        raise internal_error(e, f"unarchiving user {user_id}") from e

    return UserActionResponse(user=UserItem.model_validate(user), message="Account restored")


@router.delete(
    "/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete User",
    description="Permanently delete an account. The account must be archived first.",
)
async def delete_user(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    admin: AuthenticatedIdentity = Depends(get_current_admin),
) -> Response:
    await enforce_rate_limit(f"admin:user_action:{admin.uid}", *RATE_LIMIT_USER_ACTIONS)
    try:
        await service.hard_delete_user(db, user_id, admin)
    except ServiceError as e:
        raise_http_error(e)
    except Exception as e:
        raise internal_error(e, f"deleting user {user_id}") from e

    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/admins/send-otp", response_model=AdminInviteResponse, summary="Invite Admin")
async def send_admin_otp(
    body: AdminInviteRequest,
    db: AsyncSession = Depends(get_db),
    otp: OtpIssuer = Depends(get_admin_creation_otp),
    admin: AuthenticatedIdentity = Depends(get_current_admin),
) -> AdminInviteResponse:
    await enforce_rate_limit(f"admin:invite:{admin.uid}", *RATE_LIMIT_ADMIN_INVITES)
    try:
        expires_at = await service.request_admin_creation(
            db, otp, admin, body.email, body.display_name, role=body.role
        )
    except ServiceError as e:
        raise_http_error(e)
    except Exception as e:
        raise internal_error(e, "sending admin creation code") from e

    return AdminInviteResponse(
        email=body.email,
        expires_at=expires_at,
        message="A verification code was sent to the new admin's email address.",
    )


@router.post("/admins/resend-otp", response_model=AdminInviteResponse, summary="Resend Admin Code")
async def resend_admin_otp(
    body: AdminInviteResendRequest,
    db: AsyncSession = Depends(get_db),
    otp: OtpIssuer = Depends(get_admin_creation_otp),
    admin: AuthenticatedIdentity = Depends(get_current_admin),
) -> AdminInviteResponse:
    try:
        expires_at = await service.request_admin_creation(
            db, otp, admin, body.email, body.display_name, resend=True
        )
    except ServiceError as e:
        raise_http_error(e)
    except Exception as e:
        raise internal_error(e, "resending admin creation code") from e

    return AdminInviteResponse(
        email=body.email,
        expires_at=expires_at,
        message="A new verification code was sent.",
    )


@router.post(
    "/admins/verify-otp",
    response_model=UserActionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Admin",
)
async def verify_admin_otp(
    body: AdminInviteVerifyRequest,
    db: AsyncSession = Depends(get_db),
    otp: OtpIssuer = Depends(get_admin_creation_otp),
    admin: AuthenticatedIdentity = Depends(get_current_admin),
) -> UserActionResponse:
    try:
        user = await service.confirm_admin_creation(db, otp, admin, body.email, body.code)
    except ServiceError as e:
        raise_http_error(e)
    except Exception as e:
        raise internal_error(e, "creating admin account") from e

    return UserActionResponse(
        user=UserItem.model_validate(user),
        message="Admin account created. Login details were emailed.",
    )
