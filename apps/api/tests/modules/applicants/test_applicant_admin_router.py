"""
HTTP-level tests for the admin applicant endpoints.

The service layer is patched; these check status codes and error bodies.
"""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from school_portal.core.auth import get_current_admin
from school_portal.core.database import get_db
from school_portal.modules.applicants import admin_router
from school_portal.modules.applicants.models import ApplicantStatus
from school_portal.modules.applicants.service import (
    ApplicantValidationError,
    InvalidTransitionError,
    ScheduleConflictError,
)

SERVICE = "school_portal.modules.applicants.service"
SESSION = {"scheduled_date": "2026-03-20", "scheduled_time": "10:00"}


@pytest.fixture
def client(admin_identity):
    app = FastAPI()
    app.include_router(admin_router, prefix="/api/v1")

    async def fake_db():
        yield AsyncMock()

    app.dependency_overrides[get_db] = fake_db
    app.dependency_overrides[get_current_admin] = lambda: admin_identity
    return TestClient(app)


class TestErrorMapping:
    def test_schedule_conflict_is_409_with_details(self, client):
        error = ScheduleConflictError("2026-03-20T10:00:00+00:00")
        with patch(f"{SERVICE}.schedule_interview", AsyncMock(side_effect=error)):
            response = client.post("/api/v1/applicants/app-1/interview", json=SESSION)

        assert response.status_code == 409
        detail = response.json()["detail"]
        assert detail["error"] == "SCHEDULE_CONFLICT"
        assert detail["conflict"]["datetime_iso"] == "2026-03-20T10:00:00+00:00"

    def test_invalid_transition_is_409(self, client):
        error = InvalidTransitionError(ApplicantStatus.PENDING, ApplicantStatus.REVIEWING)
        with patch(f"{SERVICE}.start_review", AsyncMock(side_effect=error)):
            response = client.post("/api/v1/applicants/app-1/start-review")

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "INVALID_STATUS_TRANSITION"

    def test_past_demo_date_is_400(self, client):
        error = ApplicantValidationError("The demo date cannot be in the past.")
        with patch(f"{SERVICE}.schedule_demo", AsyncMock(side_effect=error)):
            response = client.post(
                "/api/v1/teacher-applicants/app-1/schedule-demo", json=SESSION
            )

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "VALIDATION_ERROR"

    def test_unexpected_error_is_generic_500(self, client):
        with patch(f"{SERVICE}.start_review", AsyncMock(side_effect=RuntimeError("boom"))):
            response = client.post("/api/v1/applicants/app-1/start-review")

        assert response.status_code == 500
        assert response.json()["detail"]["error"] == "INTERNAL_ERROR"

    def test_malformed_time_is_rejected_before_the_service(self, client):
        with patch(f"{SERVICE}.schedule_interview", AsyncMock()) as mock_schedule:
            response = client.post(
                "/api/v1/applicants/app-1/interview",
                json={"scheduled_date": "2026-03-20", "scheduled_time": "25:00"},
            )

        assert response.status_code == 422
        mock_schedule.assert_not_awaited()


class TestConflictLookup:
    def test_unparseable_moment_is_400(self, client):
        response = client.get("/api/v1/interviews/conflicts", params={"datetime_iso": "soon"})

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "VALIDATION_ERROR"

    def test_response_echoes_the_resolved_key(self, client):
        with patch(f"{SERVICE}.repository.list_slots_at", AsyncMock(return_value=[])):
            response = client.get(
                "/api/v1/interviews/conflicts",
                params={"datetime_iso": "2026-03-20T10:00:00.000Z"},
            )

        assert response.status_code == 200
        assert response.json()["datetime_iso"] == "2026-03-20T10:00:00+00:00"
        assert response.json()["count"] == 0
