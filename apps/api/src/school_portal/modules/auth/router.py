"""Authentication router."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from school_portal.core.auth import (
    AuthenticatedIdentity,
    RevokedTokenStore,
    get_current_identity,
    get_revoked_tokens,
)
from school_portal.core.database import get_db
from school_portal.core.errors import ServiceError, internal_error, raise_http_error
from school_portal.core.otp import OtpIssuer, get_login_otp
from school_portal.core.rate_limit import limit_by_ip
from school_portal.modules.auth import service
from school_portal.modules.auth.schemas import (
    ChangePasswordRequest,
    ChangePasswordResponse,
    IdentityResponse,
    LoginChallengeResponse,
    LoginRequest,
    LoginResponse,
    LogoutResponse,
    RefreshRequest,
    ResendOtpRequest,
    TokenPairResponse,
    UserResponse,
    VerifyOtpRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/login",
    response_model=LoginChallengeResponse,
    dependencies=[Depends(limit_by_ip("login", 10, 300))],
)
async def login(
    credentials: LoginRequest,
    db: AsyncSession = Depends(get_db),
    otp: OtpIssuer = Depends(get_login_otp),
) -> LoginChallengeResponse:
    """
    Check email and password, then e-mail a sign-in code.

    Raises:
        HTTPException 401: Invalid credentials
        HTTPException 403: Account archived
        HTTPException 429: Too many codes requested
    """
    try:
        challenge = await service.begin_login(db, otp, credentials.email, credentials.password)
    except ServiceError as e:
        raise_http_error(e)
    except Exception as e:
        raise internal_error(e, "starting login") from e

    return LoginChallengeResponse(
        uid=challenge.user.id,
        email=challenge.user.email,
        expires_at=challenge.expires_at,
        message="A sign-in code was sent to your email.",
    )


@router.post(
    "/verify-otp",
    response_model=LoginResponse,
    dependencies=[Depends(limit_by_ip("login_verify", 20, 300))],
)
async def verify_otp(
    body: VerifyOtpRequest,
    db: AsyncSession = Depends(get_db),
    otp: OtpIssuer = Depends(get_login_otp),
) -> LoginResponse:
    """Verify the sign-in code and return JWT tokens."""
    try:
        tokens = await service.complete_login(db, otp, body.uid, body.code)
    except ServiceError as e:
        raise_http_error(e)
    except Exception as e:
        raise internal_error(e, "verifying login code") from e

    user = tokens.user
    return LoginResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        token_type="bearer",
        user=UserResponse(
            id=str(user.id),
            email=user.email,
            display_name=user.display_name,
            role=user.role.value,
            must_change_password=user.must_change_password,
            last_login_at=user.last_login_at,
        ),
    )


@router.post(
    "/resend-otp",
    response_model=LoginChallengeResponse,
    dependencies=[Depends(limit_by_ip("login_resend", 10, 3600))],
)
async def resend_otp(
    body: ResendOtpRequest,
    db: AsyncSession = Depends(get_db),
    otp: OtpIssuer = Depends(get_login_otp),
) -> LoginChallengeResponse:
    """Resend the sign-in code (3 minute cooldown, 5 per hour)."""
    try:
        challenge = await service.resend_login_code(db, otp, body.uid)
    except ServiceError as e:
        raise_http_error(e)
    except Exception as e:
        raise internal_error(e, "resending login code") from e

    return LoginChallengeResponse(
        uid=challenge.user.id,
        email=challenge.user.email,
        expires_at=challenge.expires_at,
        message="A new sign-in code was sent to your email.",
    )


@router.post("/logout", response_model=LogoutResponse)
async def logout(
    identity: AuthenticatedIdentity = Depends(get_current_identity),
    revoked: RevokedTokenStore = Depends(get_revoked_tokens),
) -> LogoutResponse:
    """Revoke the current access token."""
    await service.logout(revoked, identity)
    return LogoutResponse(message="Logged out")


@router.get("/me", response_model=IdentityResponse)
async def me(identity: AuthenticatedIdentity = Depends(get_current_identity)) -> IdentityResponse:
    """Return the authenticated caller."""
    return IdentityResponse(uid=identity.uid, role=identity.role, email=identity.email)


@router.post(
    "/refresh",
    response_model=TokenPairResponse,
    dependencies=[Depends(limit_by_ip("token_refresh", 30, 300))],
)
async def refresh(
    body: RefreshRequest,
    db: AsyncSession = Depends(get_db),
    revoked: RevokedTokenStore = Depends(get_revoked_tokens),
) -> TokenPairResponse:
    """
    Exchange a refresh token for a new pair. The old refresh token stops working.

    Raises:
        HTTPException 401: Invalid, expired or already used refresh token
    """
    try:
        tokens = await service.refresh_session(db, revoked, body.refresh_token)
    except ServiceError as e:
        raise_http_error(e)
    except Exception as e:
        raise internal_error(e, "refreshing session") from e

    return TokenPairResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
    )


@router.post("/change-password", response_model=ChangePasswordResponse)
async def change_password(
    body: ChangePasswordRequest,
    db: AsyncSession = Depends(get_db),
    identity: AuthenticatedIdentity = Depends(get_current_identity),
) -> ChangePasswordResponse:
    """
    Change the caller's password.

    Raises:
        HTTPException 400: Wrong current password, or the new one is the same
    """
    try:
        user = await service.change_password(
            db, identity, body.current_password, body.new_password
        )
    except ServiceError as e:
        raise_http_error(e)
    except Exception as e:
        raise internal_error(e, "changing password") from e

    return ChangePasswordResponse(
        message="Password changed",
        must_change_password=user.must_change_password,
    )
