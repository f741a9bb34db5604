"""
HTTP-level tests for the applicant inbox and the message endpoints.
"""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from school_portal.core.auth import get_current_admin, get_current_applicant
from school_portal.core.database import get_db
from school_portal.modules.applicants import admin_router, router
from school_portal.modules.applicants.models import ApplicantNotification, NotificationType
from school_portal.modules.applicants.service import (
    ApplicantNotFoundError,
    NotificationNotFoundError,
)

SERVICE = "school_portal.modules.applicants.service"


@pytest.fixture
def client(admin_identity, applicant_identity):
    app = FastAPI()
    app.include_router(router, prefix="/api/v1/applicants")
    app.include_router(admin_router, prefix="/api/v1")

    async def fake_db():
        yield AsyncMock()

    app.dependency_overrides[get_db] = fake_db
    app.dependency_overrides[get_current_admin] = lambda: admin_identity
    app.dependency_overrides[get_current_applicant] = lambda: applicant_identity
    return TestClient(app)


def stored_message(**overrides) -> ApplicantNotification:
    values = dict(
        id="n-1",
        applicant_id="app-1",
        title="Documents",
        message="Please upload your diploma.",
        type=NotificationType.INFO,
        category="message",
        is_read=False,
        from_admin=True,
        created_at=datetime(2026, 3, 10, 9, 0, tzinfo=UTC),
    )
    values.update(overrides)
    return ApplicantNotification(**values)


class TestInbox:
    def test_unread_count(self, client):
        with patch(f"{SERVICE}.count_my_unread_notifications", AsyncMock(return_value=2)):
            response = client.get("/api/v1/applicants/me/notifications/unread-count")

        assert response.status_code == 200
        assert response.json() == {"unread": 2}

    def test_mark_read_returns_the_notification(self, client):
        notification = stored_message(is_read=True)
        with patch(f"{SERVICE}.mark_my_notification_read", AsyncMock(return_value=notification)):
            response = client.post("/api/v1/applicants/me/notifications/n-1/read")

        assert response.status_code == 200
        assert response.json()["is_read"] is True

    def test_read_all(self, client):
        with patch(f"{SERVICE}.mark_all_my_notifications_read", AsyncMock(return_value=5)):
            response = client.post("/api/v1/applicants/me/notifications/read-all")

        assert response.json() == {"updated": 5}

    def test_delete_is_204(self, client):
        with patch(f"{SERVICE}.delete_my_notification", AsyncMock(return_value=None)):
            response = client.delete("/api/v1/applicants/me/notifications/n-1")

        assert response.status_code == 204

    def test_unknown_notification_is_404(self, client):
        error = NotificationNotFoundError("n-9")
        with patch(f"{SERVICE}.delete_my_notification", AsyncMock(side_effect=error)):
            response = client.delete("/api/v1/applicants/me/notifications/n-9")

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "NOTIFICATION_NOT_FOUND"


class TestMessages:
    def test_admin_message_reports_delivery(self, client):
        result = (stored_message(), False)
        with patch(f"{SERVICE}.send_message_to_applicant", AsyncMock(return_value=result)):
            response = client.post(
                "/api/v1/applicants/app-1/messages",
                json={"subject": "Documents", "body": "Please upload your diploma."},
            )

        assert response.status_code == 201
        assert response.json()["delivered"] is False
        assert response.json()["message"]["from_admin"] is True

    def test_message_to_unknown_applicant_is_404(self, client):
        error = ApplicantNotFoundError("app-9")
        with patch(f"{SERVICE}.send_message_to_applicant", AsyncMock(side_effect=error)):
            response = client.post(
                "/api/v1/applicants/app-9/messages",
                json={"subject": "Documents", "body": "Hello"},
            )

        assert response.status_code == 404

    def test_empty_body_is_422(self, client):
        response = client.post(
            "/api/v1/applicants/app-1/messages", json={"subject": "Documents", "body": ""}
        )

        assert response.status_code == 422

    def test_applicant_writes_to_admins(self, client):
        message = stored_message(from_admin=False, title="Question")
        with patch(f"{SERVICE}.send_message_to_admins", AsyncMock(return_value=message)):
            response = client.post(
                "/api/v1/applicants/me/messages",
                json={"subject": "Question", "body": "Can I bring a laptop?"},
            )

        assert response.status_code == 201
        assert response.json()["from_admin"] is False

    def test_thread(self, client):
        thread = [stored_message(), stored_message(id="n-2", from_admin=False)]
        with patch(f"{SERVICE}.list_applicant_messages", AsyncMock(return_value=thread)):
            response = client.get("/api/v1/applicants/app-1/messages")

        assert [item["id"] for item in response.json()["items"]] == ["n-1", "n-2"]
