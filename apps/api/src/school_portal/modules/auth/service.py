"""
Authentication Service

Sign-in is two steps for every role:
1. Email + password are checked; a one-time code is e-mailed.
2. The code is verified (and consumed); access and refresh tokens are issued.

Logout revokes the access token's id until the token would have expired.
Refresh tokens are single use: exchanging one revokes it and returns a new
pair. Changing the password clears the forced-change flag set on accounts
created with a temporary password.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from school_portal.core.auth import AuthenticatedIdentity, RevokedTokenStore
from school_portal.core.email import send_otp_code
from school_portal.core.errors import ServiceError
from school_portal.core.otp import OtpIssuer
from school_portal.core.security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_password,
    verify_password,
)
from school_portal.modules.users.models import User
from school_portal.modules.users.repository import UserRepository

logger = logging.getLogger(__name__)


class AuthServiceError(ServiceError):
    """Base exception for authentication errors."""


class InvalidCredentialsError(AuthServiceError):
    def __init__(self):
        super().__init__(
            message="Invalid email or password.",
            error_code="INVALID_CREDENTIALS",
            status_code=401,
        )


class AccountArchivedError(AuthServiceError):
    def __init__(self):
        super().__init__(
            message="Your account has been archived. Contact an administrator.",
            error_code="ACCOUNT_ARCHIVED",
            status_code=403,
        )


class CodeDeliveryError(AuthServiceError):
    def __init__(self):
        super().__init__(
            message="We could not send your sign-in code. Please try again.",
            error_code="EMAIL_DELIVERY_FAILED",
            status_code=502,
        )


class InvalidRefreshTokenError(AuthServiceError):
    def __init__(self):
        super().__init__(
            message="Your session has expired. Please sign in again.",
            error_code="INVALID_REFRESH_TOKEN",
            status_code=401,
        )


class WrongPasswordError(AuthServiceError):
    def __init__(self):
        super().__init__(
            message="Your current password is incorrect.",
            error_code="INVALID_CURRENT_PASSWORD",
            status_code=400,
        )


class PasswordUnchangedError(AuthServiceError):
    def __init__(self):
        super().__init__(
            message="The new password must differ from the current one.",
            error_code="PASSWORD_UNCHANGED",
            status_code=400,
        )


@dataclass(frozen=True)
class LoginChallenge:
    user: User
    expires_at: datetime


@dataclass(frozen=True)
class IssuedTokens:
    access_token: str
    refresh_token: str
    user: User


async def _send_login_code(otp: OtpIssuer, user: User, resend: bool) -> datetime:
    issued = await otp.issue(user.id, resend=resend)
    sent = await send_otp_code(
        to_email=user.email,
        recipient_name=user.display_name,
        code=issued.code,
        purpose="finish signing in",
    )
    if not sent:
        await otp.discard(user.id)
        raise CodeDeliveryError()
    return issued.expires_at


async def begin_login(
    db: AsyncSession,
    otp: OtpIssuer,
    email: str,
    password: str,
) -> LoginChallenge:
    """
    Check credentials and e-mail a sign-in code.

    Raises:
        InvalidCredentialsError: unknown email or wrong password
        AccountArchivedError: the account is archived
        OtpSendLimitError: too many codes this hour
        CodeDeliveryError: the e-mail could not be sent
    """
    user = await UserRepository.get_by_email(db, email)

    if not user:
        logger.warning(f"Login attempt for non-existent email: {email}")
        raise InvalidCredentialsError()

    if not verify_password(password, user.password_hash):
        logger.warning(f"Invalid password for user: {email}")
        raise InvalidCredentialsError()

    if user.is_archived:
        logger.warning(f"Login attempt for archived account: {email}")
        raise AccountArchivedError()

    expires_at = await _send_login_code(otp, user, resend=False)
    logger.info(f"Sign-in code sent to user {user.id}")
    return LoginChallenge(user=user, expires_at=expires_at)


async def resend_login_code(db: AsyncSession, otp: OtpIssuer, uid: str) -> LoginChallenge:
    """Resend the sign-in code, subject to the cooldown and hourly cap."""
    user = await UserRepository.get_by_id(db, uid)
    if not user or user.is_archived:
        # Same answer as an unknown record so uids cannot be guessed
        await otp.discard(uid)
        raise InvalidCredentialsError()

    expires_at = await _send_login_code(otp, user, resend=True)
    return LoginChallenge(user=user, expires_at=expires_at)


def _issue_tokens(user: User) -> IssuedTokens:
    additional_claims = {
        "email": user.email,
        "role": user.role.value,
        "name": user.display_name,
    }
    return IssuedTokens(
        access_token=create_access_token(
            subject=str(user.id), additional_claims=additional_claims
        ),
        refresh_token=create_refresh_token(subject=str(user.id)),
        user=user,
    )


async def complete_login(
    db: AsyncSession,
    otp: OtpIssuer,
    uid: str,
    code: str,
) -> IssuedTokens:
    """
    Verify the sign-in code and issue tokens.

    The code is consumed before the user is loaded, so it cannot be
    replayed even if token issuance fails.
    """
    await otp.verify(uid, code)

    user = await UserRepository.get_by_id(db, uid)
    if not user or user.is_archived:
        raise InvalidCredentialsError()

    await UserRepository.mark_logged_in(db, user, datetime.now(UTC))
    await db.commit()

    logger.info(f"User logged in: {user.email} (role: {user.role.value})")
    return _issue_tokens(user)


async def logout(revoked: RevokedTokenStore, identity: AuthenticatedIdentity) -> None:
    """Revoke the caller's access token."""
    if not identity.token_id:
        logger.debug(f"Token for {identity.uid} has no jti, nothing to revoke")
        return
    await revoked.revoke(identity.token_id, identity.expires_at)
    logger.info(f"User {identity.uid} logged out")


async def refresh_session(
    db: AsyncSession,
    revoked: RevokedTokenStore,
    refresh_token: str,
) -> IssuedTokens:
    """
    Exchange a refresh token for a new token pair.

    The presented token is revoked until it would have expired, so a
    stolen copy stops working as soon as the owner refreshes.

    Raises:
        InvalidRefreshTokenError: Bad, expired, reused or wrong-type token,
            or the account is gone or archived
    """
    claims = decode_token(refresh_token)
    if not claims or claims.get("type") != "refresh" or not claims.get("jti"):
        raise InvalidRefreshTokenError()
    if await revoked.is_revoked(claims["jti"]):
        logger.warning(f"Reused refresh token for {claims['sub']}")
        raise InvalidRefreshTokenError()

    user = await UserRepository.get_by_id(db, claims["sub"])
    if not user or user.is_archived:
        raise InvalidRefreshTokenError()

    await revoked.revoke(claims["jti"], datetime.fromtimestamp(claims["exp"], UTC))
    logger.info(f"Session refreshed for {user.email}")
    return _issue_tokens(user)


async def change_password(
    db: AsyncSession,
    identity: AuthenticatedIdentity,
    current_password: str,
    new_password: str,
) -> User:
    """Replace the caller's password after checking the current one."""
    user = await UserRepository.get_by_id(db, identity.uid)
    if not user or user.is_archived:
        raise InvalidCredentialsError()
    if not verify_password(current_password, user.password_hash):
        raise WrongPasswordError()
    if current_password == new_password:
        raise PasswordUnchangedError()

    await UserRepository.set_password(db, user, hash_password(new_password))
    await db.commit()
    logger.info(f"Password changed for {user.email}")
    return user
