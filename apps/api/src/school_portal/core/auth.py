"""
Authentication and Authorization Module

Provides authentication dependencies for FastAPI endpoints.
This module validates JWT bearer tokens (see security.py), rejects revoked
tokens, and exposes the caller as an AuthenticatedIdentity value that
routers pass explicitly to the service layer.

SECURITY NOTE:
- Development mode auth bypass is ONLY enabled when PYTHON_ENV=development
- Production environments MUST set PYTHON_ENV=production to disable test tokens
- The is_production check provides an additional safety layer
"""

import logging
import os
from dataclasses import dataclass
from datetime import UTC, datetime

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from school_portal.core.config import settings
from school_portal.core.keystore import KeyedStore, get_keyed_store
from school_portal.core.security import decode_token

logger = logging.getLogger(__name__)

# Security scheme for OpenAPI documentation
security = HTTPBearer(
    auto_error=True,
    description="JWT Bearer token for authentication",
)

ROLE_SUPER_ADMIN = "super_admin"
ROLE_ADMIN = "admin"
ROLE_APPLICANT = "applicant"
ADMIN_ROLES = frozenset({ROLE_SUPER_ADMIN, ROLE_ADMIN})


@dataclass(frozen=True)
class AuthenticatedIdentity:
    """
    The authenticated caller, built once from JWT claims.

    Attributes:
        uid: User id (the token's `sub` claim)
        role: One of super_admin, admin, applicant
        email: User's email address
        token_id: The token's `jti`, used for logout
        expires_at: Token expiry, used to size the revocation entry
    """

    uid: str
    role: str
    email: str
    token_id: str | None = None
    expires_at: datetime | None = None

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    @property
    def is_super_admin(self) -> bool:
        return self.role == ROLE_SUPER_ADMIN

    def __str__(self) -> str:
        return f"AuthenticatedIdentity(uid={self.uid}, email={self.email}, role={self.role})"


# ============================================
# Revoked tokens
# ============================================


class RevokedTokenStore:
    """Remembers logged-out token ids until the tokens would expire anyway."""

    KEY_PREFIX = "revoked:"

    def __init__(self, store: KeyedStore):
        self.store = store

    async def revoke(self, token_id: str, expires_at: datetime | None) -> None:
        ttl = None
        if expires_at is not None:
            ttl = max(int((expires_at - datetime.now(UTC)).total_seconds()), 1)
        await self.store.set(
            f"{self.KEY_PREFIX}{token_id}",
            {"revoked_at": datetime.now(UTC).timestamp()},
            ttl_seconds=ttl,
        )

    async def is_revoked(self, token_id: str) -> bool:
        return await self.store.get(f"{self.KEY_PREFIX}{token_id}") is not None


def get_revoked_tokens(store: KeyedStore = Depends(get_keyed_store)) -> RevokedTokenStore:
    return RevokedTokenStore(store)


# ============================================
# Development mode
# ============================================


def _is_dev_mode_safe() -> bool:
    """
    Check if development mode is safe to enable.

    SECURITY: all of these must hold:
    1. settings.is_development is True (PYTHON_ENV=development)
    2. settings.is_production is False
    3. The raw PYTHON_ENV variable is not production or staging

    Returns:
        True only if ALL safety checks pass
    """
    env_var = os.getenv("PYTHON_ENV", "").lower()

    is_safe = (
        settings.is_development
        and not settings.is_production
        and env_var != "production"
        and env_var != "staging"
    )

    if is_safe:
        logger.warning(
            "SECURITY: Development auth mode is ENABLED. This MUST NOT be used in production!"
        )

    return is_safe


_DEVELOPMENT_MODE = _is_dev_mode_safe()

_DEV_IDENTITY = AuthenticatedIdentity(
    uid="00000000-0000-0000-0000-000000000001",
    role=ROLE_SUPER_ADMIN,
    email="admin@schoolportal.dev",
)


def _unauthorized(error: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": error, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


async def _validate_jwt_token(token: str, revoked: RevokedTokenStore) -> AuthenticatedIdentity:
    """
    Validate a JWT and build the caller's identity.

    Raises:
        HTTPException 401: invalid, expired, revoked or malformed token
    """
    if _DEVELOPMENT_MODE and token in ("dev-token", "test-token"):
        logger.debug("Development mode: Using test token")
        return _DEV_IDENTITY

    payload = decode_token(token)

    if payload is None:
        logger.warning("Invalid or expired JWT token")
        raise _unauthorized("INVALID_TOKEN", "Invalid or expired authentication token.")

    if payload.get("type", "access") != "access":
        logger.warning(f"Invalid token type: {payload.get('type')}")
        raise _unauthorized("INVALID_TOKEN_TYPE", "This endpoint requires an access token.")

    uid = payload.get("sub")
    role = payload.get("role")
    if not uid or not role:
        logger.warning("Token is missing sub or role claim")
        raise _unauthorized("INVALID_TOKEN_CLAIMS", "Token contains invalid or missing claims.")

    token_id = payload.get("jti")
    if token_id and await revoked.is_revoked(token_id):
        logger.info(f"Rejected revoked token for user {uid}")
        raise _unauthorized("TOKEN_REVOKED", "This session has been logged out.")

    exp = payload.get("exp")
    return AuthenticatedIdentity(
        uid=str(uid),
        role=str(role),
        email=payload.get("email", ""),
        token_id=token_id,
        expires_at=datetime.fromtimestamp(exp, UTC) if exp else None,
    )


async def get_current_identity(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    revoked: RevokedTokenStore = Depends(get_revoked_tokens),
) -> AuthenticatedIdentity:
    """FastAPI dependency returning the authenticated caller (any role)."""
    return await _validate_jwt_token(credentials.credentials, revoked)


async def get_current_admin(
    identity: AuthenticatedIdentity = Depends(get_current_identity),
) -> AuthenticatedIdentity:
    """
    FastAPI dependency that requires an admin or super admin.

    Usage:
        @router.post("/applicants/{id}/approve")
        async def approve(admin: AuthenticatedIdentity = Depends(get_current_admin)):
            ...

    Raises:
        HTTPException 403: caller is not an admin
    """
    if not identity.is_admin:
        logger.warning(
            f"Access denied: User {identity.uid} ({identity.email}) has role '{identity.role}'"
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": "ADMIN_ACCESS_REQUIRED",
                "message": "Admin access is required for this endpoint.",
            },
        )
    return identity


async def get_current_applicant(
    identity: AuthenticatedIdentity = Depends(get_current_identity),
) -> AuthenticatedIdentity:
    """FastAPI dependency that requires an applicant account."""
    if identity.role != ROLE_APPLICANT:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": "APPLICANT_ACCESS_REQUIRED",
                "message": "This endpoint is only available to applicants.",
            },
        )
    return identity


__all__ = [
    "AuthenticatedIdentity",
    "RevokedTokenStore",
    "get_current_admin",
    "get_current_applicant",
    "get_current_identity",
    "get_revoked_tokens",
]
