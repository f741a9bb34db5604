"""
One-Time Codes

Issues and verifies 6-digit codes that gate login, admin account creation
and applicant e-mail confirmation.

Protocol:
- A code lives for 5 minutes and is stored with its send history and a
  failed-attempt counter under `otp:{namespace}:{identity}`.
- Verification needs an exact match, an unexpired code and fewer than 3
  failed attempts. Once 3 attempts have failed the code is dropped, even if
  the next guess is right.
- A successful verification deletes the record before returning, so a code
  can never be used twice.
- The first resend of a code is allowed at once, in case the first e-mail
  never arrived. Later resends honor a per-flow cooldown measured from the
  previous resend. Every send counts toward a rolling cap of 5 per hour.

Codes are never logged.
"""

import hmac
import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from fastapi import Depends

from school_portal.core.errors import ServiceError
from school_portal.core.keystore import KeyedStore, get_keyed_store

logger = logging.getLogger(__name__)

CODE_DIGITS = 6


@dataclass(frozen=True)
class OtpPolicy:
    """Timing and limit parameters for one OTP flow."""

    ttl: timedelta = timedelta(minutes=5)
    cooldown: timedelta = timedelta(minutes=2)
    max_attempts: int = 3
    max_sends: int = 5
    send_window: timedelta = timedelta(hours=1)


LOGIN_OTP_POLICY = OtpPolicy(cooldown=timedelta(minutes=3))
ADMIN_CREATION_OTP_POLICY = OtpPolicy(cooldown=timedelta(minutes=2))
INTAKE_OTP_POLICY = OtpPolicy(cooldown=timedelta(minutes=2))


@dataclass(frozen=True)
class IssuedCode:
    """A freshly generated code and when it stops being valid."""

    code: str
    expires_at: datetime


# ============================================
# Errors
# ============================================


class OtpError(ServiceError):
    """Base exception for one-time code errors."""


class OtpNotFoundError(OtpError):
    def __init__(self):
        super().__init__(
            message="No active verification code. Please request a new one.",
            error_code="OTP_NOT_FOUND",
            status_code=400,
        )


class OtpExpiredError(OtpError):
    def __init__(self):
        super().__init__(
            message="The verification code has expired. Please request a new one.",
            error_code="OTP_EXPIRED",
            status_code=400,
        )


class OtpInvalidError(OtpError):
    def __init__(self, attempts_remaining: int):
        self.attempts_remaining = attempts_remaining
        super().__init__(
            message="The verification code is incorrect.",
            error_code="OTP_INVALID",
            status_code=400,
            extra={"attempts_remaining": attempts_remaining},
        )


class OtpAttemptsExceededError(OtpError):
    def __init__(self):
        super().__init__(
            message="Too many incorrect attempts. Please request a new code.",
            error_code="OTP_ATTEMPTS_EXCEEDED",
            status_code=429,
        )


class OtpCooldownError(OtpError):
    def __init__(self, retry_after_seconds: int):
        self.retry_after_seconds = retry_after_seconds
        super().__init__(
            message=f"Please wait {retry_after_seconds} seconds before requesting a new code.",
            error_code="OTP_COOLDOWN",
            status_code=429,
            extra={"retry_after_seconds": retry_after_seconds},
        )


class OtpSendLimitError(OtpError):
    def __init__(self, retry_after_seconds: int):
        self.retry_after_seconds = retry_after_seconds
        super().__init__(
            message="Too many codes requested. Please try again later.",
            error_code="OTP_SEND_LIMIT",
            status_code=429,
            extra={"retry_after_seconds": retry_after_seconds},
        )


# ============================================
# Issuer
# ============================================


def _utcnow() -> datetime:
    return datetime.now(UTC)


def generate_code() -> str:
    """Generate a zero-padded 6-digit numeric code."""
    return f"{secrets.randbelow(10**CODE_DIGITS):0{CODE_DIGITS}d}"


class OtpIssuer:
    """
    Issues and verifies one-time codes for a single flow.

    Args:
        store: Keyed store holding pending codes
        namespace: Flow name, part of every key (e.g. "login")
        policy: Expiry, cooldown and limit settings
        clock: Returns the current UTC time (injectable for tests)
    """

    def __init__(
        self,
        store: KeyedStore,
        namespace: str,
        policy: OtpPolicy,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.namespace = namespace
        self.policy = policy
        self._clock = clock

    def _key(self, identity: str) -> str:
        return f"otp:{self.namespace}:{identity}"

    def _record_ttl(self) -> int:
        # Keep the record long enough to enforce the rolling send cap
        return int(max(self.policy.ttl, self.policy.send_window).total_seconds())

    async def issue(
        self,
        identity: str,
        payload: dict[str, Any] | None = None,
        resend: bool = False,
    ) -> IssuedCode:
        """
        Generate and store a new code for identity.

        Args:
            identity: Who the code is for (uid, composite key, ...)
            payload: Data to hand back on successful verification
            resend: Require a pending record and enforce the cooldown between
                resends (the first resend is never held back)

        Raises:
            OtpNotFoundError: resend requested with no pending record
            OtpCooldownError: resend inside the cooldown window
            OtpSendLimitError: rolling send cap reached
        """
        key = self._key(identity)
        now = self._clock()
        now_ts = now.timestamp()
        record = await self.store.get(key)

        if resend and record is None:
            raise OtpNotFoundError()

        window_start = now_ts - self.policy.send_window.total_seconds()
        history = [ts for ts in (record or {}).get("sent_at", []) if ts > window_start]

        last_resent_at = (record or {}).get("last_resent_at")
        if resend and last_resent_at is not None:
            elapsed = now_ts - last_resent_at
            cooldown = self.policy.cooldown.total_seconds()
            if elapsed < cooldown:
                retry_after = int(cooldown - elapsed) + 1
                logger.info(f"OTP resend for {self.namespace} blocked by cooldown ({retry_after}s)")
                raise OtpCooldownError(retry_after)

        if len(history) >= self.policy.max_sends:
            retry_after = int(min(history) - window_start) + 1
            logger.warning(f"OTP send cap reached for {self.namespace}:{identity}")
            raise OtpSendLimitError(retry_after)

        if payload is None and record is not None:
            payload = record.get("payload")

        code = generate_code()
        expires_at = now + self.policy.ttl
        await self.store.set(
            key,
            {
                "code": code,
                "expires_at": expires_at.timestamp(),
                "last_resent_at": now_ts if resend else None,
                "attempts": 0,
                "sent_at": [*history, now_ts],
                "payload": payload or {},
            },
            ttl_seconds=self._record_ttl(),
        )
        logger.info(f"Issued {self.namespace} code for {identity}")
        return IssuedCode(code=code, expires_at=expires_at)

    async def _drop_code(self, key: str, record: dict[str, Any]) -> None:
        """Invalidate the code but keep the send history."""
        record["code"] = None
        await self.store.set(key, record, ttl_seconds=self._record_ttl())

    async def verify(self, identity: str, code: str) -> dict[str, Any]:
        """
        Verify a submitted code and consume it.

        Returns:
            The payload stored when the code was issued

        Raises:
            OtpNotFoundError, OtpAttemptsExceededError, OtpExpiredError, OtpInvalidError
        """
        key = self._key(identity)
        record = await self.store.get(key)

        if record is None or not record.get("code"):
            raise OtpNotFoundError()

        if record["attempts"] >= self.policy.max_attempts:
            await self._drop_code(key, record)
            logger.warning(f"{self.namespace} code for {identity} invalidated after failed attempts")
            raise OtpAttemptsExceededError()

        if self._clock().timestamp() > record["expires_at"]:
            await self._drop_code(key, record)
            raise OtpExpiredError()

        if not hmac.compare_digest(str(record["code"]), str(code).strip()):
            record["attempts"] += 1
            await self.store.set(key, record, ttl_seconds=self._record_ttl())
            remaining = max(self.policy.max_attempts - record["attempts"], 0)
            logger.info(f"Wrong {self.namespace} code for {identity} ({remaining} attempts left)")
            raise OtpInvalidError(remaining)

        # Single use: gone before the caller acts on it
        await self.store.delete(key)
        logger.info(f"Verified {self.namespace} code for {identity}")
        return record.get("payload") or {}

    async def discard(self, identity: str) -> None:
        """Forget any pending code for identity (e.g. the e-mail never went out)."""
        await self.store.delete(self._key(identity))


# ============================================
# FastAPI dependencies
# ============================================


def get_login_otp(store: KeyedStore = Depends(get_keyed_store)) -> OtpIssuer:
    return OtpIssuer(store, "login", LOGIN_OTP_POLICY)


def get_admin_creation_otp(store: KeyedStore = Depends(get_keyed_store)) -> OtpIssuer:
    return OtpIssuer(store, "admin_creation", ADMIN_CREATION_OTP_POLICY)


def get_intake_otp(store: KeyedStore = Depends(get_keyed_store)) -> OtpIssuer:
    return OtpIssuer(store, "intake", INTAKE_OTP_POLICY)
