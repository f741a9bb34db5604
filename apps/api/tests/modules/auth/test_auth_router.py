"""
HTTP-level tests for token refresh and password change.
"""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from school_portal.core.auth import get_current_identity, get_revoked_tokens
from school_portal.core.database import get_db
from school_portal.modules.auth import router
from school_portal.modules.auth.service import (
    InvalidRefreshTokenError,
    IssuedTokens,
    WrongPasswordError,
)
from school_portal.modules.users.models import User, UserRole

SERVICE = "school_portal.modules.auth.service"


@pytest.fixture
def client(admin_identity):
    app = FastAPI()
    app.include_router(router, prefix="/api/v1/auth")

    async def fake_db():
        yield AsyncMock()

    app.dependency_overrides[get_db] = fake_db
    app.dependency_overrides[get_current_identity] = lambda: admin_identity
    app.dependency_overrides[get_revoked_tokens] = lambda: AsyncMock()
    return TestClient(app)


def make_user(**overrides) -> User:
    values = dict(
        id="55555555-5555-5555-5555-555555555555",
        email="efua@school.test",
        password_hash="hashed",
        display_name="Efua Owusu",
        role=UserRole.ADMIN,
        is_archived=False,
        must_change_password=False,
    )
    values.update(overrides)
    return User(**values)


class TestRefresh:
    def test_returns_new_pair(self, client):
        tokens = IssuedTokens(access_token="a2", refresh_token="r2", user=make_user())
        with patch(f"{SERVICE}.refresh_session", AsyncMock(return_value=tokens)):
            response = client.post("/api/v1/auth/refresh", json={"refresh_token": "r1"})

        assert response.status_code == 200
        assert response.json() == {
            "access_token": "a2",
            "refresh_token": "r2",
            "token_type": "bearer",
        }

    def test_reused_token_is_401(self, client):
        error = InvalidRefreshTokenError()
        with patch(f"{SERVICE}.refresh_session", AsyncMock(side_effect=error)):
            response = client.post("/api/v1/auth/refresh", json={"refresh_token": "r1"})

        assert response.status_code == 401
        assert response.json()["detail"]["error"] == "INVALID_REFRESH_TOKEN"


class TestChangePassword:
    def test_flag_cleared(self, client):
        with patch(f"{SERVICE}.change_password", AsyncMock(return_value=make_user())):
            response = client.post(
                "/api/v1/auth/change-password",
                json={"current_password": "temp-pass", "new_password": "n3w-passw0rd"},
            )

        assert response.status_code == 200
        assert response.json()["must_change_password"] is False

    def test_wrong_current_password_is_400(self, client):
        with patch(f"{SERVICE}.change_password", AsyncMock(side_effect=WrongPasswordError())):
            response = client.post(
                "/api/v1/auth/change-password",
                json={"current_password": "guess", "new_password": "n3w-passw0rd"},
            )

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "INVALID_CURRENT_PASSWORD"

    def test_short_new_password_is_422(self, client):
        response = client.post(
            "/api/v1/auth/change-password",
            json={"current_password": "temp-pass", "new_password": "short"},
        )

        assert response.status_code == 422
