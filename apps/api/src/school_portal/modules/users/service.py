"""
User Service Layer

Account administration:

1. Archive / unarchive:
   - Archiving blocks sign-in but keeps the account
   - The last active super admin cannot be archived
   - Admins cannot archive themselves

2. Hard delete (two steps):
   - Only an archived account can be deleted, so a single click never
     destroys an active user

3. Admin creation gated by a one-time code:
   - The code goes to the new admin's address, keyed by
     "{actor_uid}::{email}" so two admins can invite in parallel
   - On verification the account is created with a temporary password
     that is e-mailed to the new admin (best-effort)
"""

import logging
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from school_portal.core.auth import AuthenticatedIdentity
from school_portal.core.email import send_account_credentials, send_otp_code
from school_portal.core.errors import ServiceError
from school_portal.core.notify import commit_then_notify
from school_portal.core.otp import OtpIssuer
from school_portal.core.security import generate_temporary_password, hash_password
from school_portal.modules.activity_logs import repository as activity_log
from school_portal.modules.users.models import User, UserRole
from school_portal.modules.users.repository import UserRepository

logger = logging.getLogger(__name__)


# ============================================
# Errors
# ============================================


class UserServiceError(ServiceError):
    """Base exception for user service errors."""


class UserNotFoundError(UserServiceError):
    def __init__(self, user_id: str):
        super().__init__(
            message=f"User {user_id} not found",
            error_code="USER_NOT_FOUND",
            status_code=404,
        )


class UserNotArchivedError(UserServiceError):
    """Raised when a hard delete is attempted on an active account."""

    def __init__(self):
        super().__init__(
            message="Archive this account before deleting it permanently.",
            error_code="USER_NOT_ARCHIVED",
            status_code=409,
        )


class LastSuperAdminError(UserServiceError):
    def __init__(self):
        super().__init__(
            message="The last active super admin cannot be archived or deleted.",
            error_code="LAST_SUPER_ADMIN",
            status_code=409,
        )


class SelfArchiveError(UserServiceError):
    def __init__(self):
        super().__init__(
            message="You cannot archive or delete your own account.",
            error_code="CANNOT_MODIFY_SELF",
            status_code=409,
        )


class AlreadyInStateError(UserServiceError):
    def __init__(self, message: str):
        super().__init__(message=message, error_code="NO_CHANGE", status_code=409)


class EmailAlreadyRegisteredError(UserServiceError):
    def __init__(self, email: str):
        super().__init__(
            message=f"An account with email {email} already exists.",
            error_code="EMAIL_ALREADY_REGISTERED",
            status_code=409,
        )


class EmailDeliveryError(UserServiceError):
    def __init__(self):
        super().__init__(
            message="We could not send the verification code. Please try again.",
            error_code="EMAIL_DELIVERY_FAILED",
            status_code=502,
        )


class InsufficientRoleError(UserServiceError):
    def __init__(self, message: str):
        super().__init__(message=message, error_code="INSUFFICIENT_ROLE", status_code=403)


# ============================================
# Archive / delete
# ============================================


async def _get_user(db: AsyncSession, user_id: str) -> User:
    user = await UserRepository.get_by_id(db, user_id)
    if not user:
        logger.warning(f"User not found: {user_id}")
        raise UserNotFoundError(user_id)
    return user


async def _guard_super_admin(db: AsyncSession, user: User, actor: AuthenticatedIdentity) -> None:
    if user.role == UserRole.SUPER_ADMIN:
        if not actor.is_super_admin:
            raise InsufficientRoleError("Only a super admin can modify a super admin account.")
        if not user.is_archived and await UserRepository.count_active_super_admins(db) <= 1:
            raise LastSuperAdminError()


async def list_users(
    db: AsyncSession,
    *,
    role: UserRole | None = None,
    archived: bool | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[User], int]:
    return await UserRepository.list_users(
        db, role=role, archived=archived, limit=limit, offset=offset
    )


async def archive_user(
    db: AsyncSession,
    user_id: str,
    actor: AuthenticatedIdentity,
    now: datetime | None = None,
) -> User:
    """Archive an account. Archived accounts cannot sign in."""
    user = await _get_user(db, user_id)

    if user.id == actor.uid:
        raise SelfArchiveError()
    if user.is_archived:
        raise AlreadyInStateError("This account is already archived.")
    await _guard_super_admin(db, user, actor)

    await UserRepository.set_archived(
        db, user, True, actor_uid=actor.uid, at=now or datetime.now(UTC)
    )
    activity_log.record(
        db,
        "user_archived",
        performed_by=actor.uid,
        performed_by_email=actor.email,
        target_type="user",
        target_id=user.id,
        details={"email": user.email, "role": user.role.value},
    )
    await db.commit()

    logger.info(f"User {user.id} archived by {actor.uid}")
    return user


async def unarchive_user(
    db: AsyncSession,
    user_id: str,
    actor: AuthenticatedIdentity,
) -> User:
    """Restore an archived account."""
    user = await _get_user(db, user_id)

    if not user.is_archived:
        raise AlreadyInStateError("This account is not archived.")
    if user.role == UserRole.SUPER_ADMIN and not actor.is_super_admin:
        raise InsufficientRoleError("Only a super admin can modify a super admin account.")

    await UserRepository.set_archived(db, user, False, actor_uid=None, at=datetime.now(UTC))
    activity_log.record(
        db,
        "user_unarchived",
        performed_by=actor.uid,
        performed_by_email=actor.email,
        target_type="user",
        target_id=user.id,
        details={"email": user.email},
    )
    await db.commit()

    logger.info(f"User {user.id} unarchived by {actor.uid}")
    return user


async def hard_delete_user(
    db: AsyncSession,
    user_id: str,
    actor: AuthenticatedIdentity,
) -> None:
    """
    Permanently delete an account.

    Raises:
        UserNotFoundError: unknown id
        SelfArchiveError: actor deleting themself
        UserNotArchivedError: the account has not been archived first
    """
    user = await _get_user(db, user_id)

    if user.id == actor.uid:
        raise SelfArchiveError()
    if not user.is_archived:
        logger.warning(f"Refusing to delete active user {user.id}")
        raise UserNotArchivedError()
    if user.role == UserRole.SUPER_ADMIN and not actor.is_super_admin:
        raise InsufficientRoleError("Only a super admin can delete a super admin account.")

    snapshot = {"email": user.email, "role": user.role.value, "display_name": user.display_name}
    await UserRepository.delete(db, user.id)
    activity_log.record(
        db,
        "user_deleted",
        performed_by=actor.uid,
        performed_by_email=actor.email,
        target_type="user",
        target_id=user.id,
        details=snapshot,
    )
    await db.commit()

    logger.info(f"User {user.id} permanently deleted by {actor.uid}")


# ============================================
# Admin creation
# ============================================


def admin_creation_key(actor_uid: str, email: str) -> str:
    return f"{actor_uid}::{email.lower()}"


async def request_admin_creation(
    db: AsyncSession,
    otp: OtpIssuer,
    actor: AuthenticatedIdentity,
    email: str,
    display_name: str,
    role: UserRole = UserRole.ADMIN,
    resend: bool = False,
) -> datetime:
    """
    Send a one-time code to the address of a future admin.

    Returns:
        When the code expires

    Raises:
        EmailAlreadyRegisteredError, InsufficientRoleError, OtpError, EmailDeliveryError
    """
    if role == UserRole.APPLICANT:
        raise InsufficientRoleError("Applicant accounts are created through the application form.")
    if role == UserRole.SUPER_ADMIN and not actor.is_super_admin:
        raise InsufficientRoleError("Only a super admin can create another super admin.")

    if await UserRepository.email_exists(db, email):
        raise EmailAlreadyRegisteredError(email)

    identity = admin_creation_key(actor.uid, email)
    issued = await otp.issue(
        identity,
        payload={"display_name": display_name, "role": role.value},
        resend=resend,
    )

    sent = await send_otp_code(
        to_email=email,
        recipient_name=display_name,
        code=issued.code,
        purpose="confirm your new admin account",
    )
    if not sent:
        await otp.discard(identity)
        raise EmailDeliveryError()

    logger.info(f"Admin creation code sent to {email} on behalf of {actor.uid}")
    return issued.expires_at


async def confirm_admin_creation(
    db: AsyncSession,
    otp: OtpIssuer,
    actor: AuthenticatedIdentity,
    email: str,
    code: str,
) -> User:
    """
    Verify the code and create the admin account.

    The code is consumed before the account is created, so a failed insert
    still needs a fresh code.
    """
    payload = await otp.verify(admin_creation_key(actor.uid, email), code)

    if await UserRepository.email_exists(db, email):
        raise EmailAlreadyRegisteredError(email)

    temporary_password = generate_temporary_password()
    role = UserRole(payload.get("role", UserRole.ADMIN.value))
    display_name = payload.get("display_name") or email

    try:
        user = await UserRepository.create(
            db,
            email=email,
            password_hash=hash_password(temporary_password),
            display_name=display_name,
            role=role,
            must_change_password=True,
        )
        activity_log.record(
            db,
            "admin_created",
            performed_by=actor.uid,
            performed_by_email=actor.email,
            target_type="user",
            target_id=user.id,
            details={"email": user.email, "role": role.value},
        )
        await commit_then_notify(
            db,
            f"creating admin {user.email}",
            [
                (
                    "credentials email",
                    lambda: send_account_credentials(
                        to_email=user.email,
                        recipient_name=display_name,
                        temporary_password=temporary_password,
                        role_label=role.value.replace("_", " "),
                    ),
                ),
            ],
        )
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Admin account {user.id} created by {actor.uid}")
    return user
