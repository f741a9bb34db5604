"""
Shared fixtures.
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from school_portal.core.auth import AuthenticatedIdentity
from school_portal.core.keystore import InMemoryKeyedStore


class FakeClock:
    """Settable clock for code expiry and cooldown tests."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def mock_db():
    """Create a mock database session."""
    db = AsyncMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.refresh = AsyncMock()
    db.flush = AsyncMock()
    db.execute = AsyncMock()
    db.delete = AsyncMock()
    db.add = MagicMock()
    return db


@pytest.fixture
def fixed_now():
    return datetime(2026, 3, 10, 9, 0, tzinfo=UTC)


@pytest.fixture
def clock(fixed_now):
    return FakeClock(fixed_now)


@pytest.fixture
def keyed_store():
    return InMemoryKeyedStore()


@pytest.fixture
def admin_identity():
    return AuthenticatedIdentity(
        uid="11111111-1111-1111-1111-111111111111",
        role="admin",
        email="admin@school.test",
    )


@pytest.fixture
def super_admin_identity():
    return AuthenticatedIdentity(
        uid="22222222-2222-2222-2222-222222222222",
        role="super_admin",
        email="head@school.test",
    )


@pytest.fixture
def applicant_identity():
    return AuthenticatedIdentity(
        uid="33333333-3333-3333-3333-333333333333",
        role="applicant",
        email="ama.mensah@example.com",
    )


@pytest.fixture
def mock_redis():
    """Create a mock Redis client."""
    redis = AsyncMock()
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock()
    redis.delete = AsyncMock()
    redis.incr = AsyncMock(return_value=1)
    redis.expire = AsyncMock()
    redis.ttl = AsyncMock(return_value=3600)
    return redis
