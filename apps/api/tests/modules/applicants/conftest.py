"""
Fixtures for applicant tests.
"""

from datetime import date
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest

from school_portal.modules.applicants.models import (
    Applicant,
    ApplicantKind,
    ApplicantStatus,
    ScheduleSlot,
    SlotKind,
)

SERVICE = "school_portal.modules.applicants.service"


def make_applicant(status: ApplicantStatus = ApplicantStatus.REVIEWING, **overrides) -> Applicant:
    values = dict(
        id=str(uuid4()),
        uid=str(uuid4()),
        first_name="Ama",
        last_name="Mensah",
        email="ama.mensah@example.com",
        kind=ApplicantKind.TEACHER,
        position="Mathematics Teacher",
        status=status,
        archived=False,
        archived_at=None,
        final_decision=None,
        final_decision_date=None,
        decision_reason=None,
        deletion_date=None,
        interview=None,
        demo_teaching=None,
        documents=None,
    )
    values.update(overrides)
    return Applicant(**values)


def make_slot(applicant: Applicant, kind: SlotKind = SlotKind.INTERVIEW, **overrides) -> ScheduleSlot:
    values = dict(
        id=str(uuid4()),
        applicant_id=applicant.id,
        kind=kind,
        scheduled_date=date(2026, 3, 20),
        scheduled_time="10:00",
        datetime_iso="2026-03-20T10:00:00+00:00",
        mode="in_person",
        location="Main campus",
        notes=None,
        subject="Algebra" if kind == SlotKind.DEMO else None,
    )
    values.update(overrides)
    return ScheduleSlot(**values)


@pytest.fixture
def repo():
    """Patch the repository queries the service awaits."""
    mocks = SimpleNamespace(
        get_by_id=AsyncMock(),
        get_by_uid=AsyncMock(),
        get_active_by_email=AsyncMock(return_value=None),
        create_applicant=AsyncMock(),
        get_slot=AsyncMock(return_value=None),
        find_slot_conflict=AsyncMock(return_value=None),
        list_slots_at=AsyncMock(return_value=[]),
        create_slot=AsyncMock(),
        delete_slot=AsyncMock(),
    )
    with patch.multiple(f"{SERVICE}.repository", **vars(mocks)):
        yield mocks


@pytest.fixture
def notify():
    """Patch every outbound notification of the applicant service."""
    mocks = SimpleNamespace(
        applicant=AsyncMock(),
        schedule_email=AsyncMock(return_value=True),
        decision_email=AsyncMock(return_value=True),
        otp_email=AsyncMock(return_value=True),
    )
    with (
        patch(f"{SERVICE}._notify_applicant", mocks.applicant),
        patch(f"{SERVICE}.send_schedule_notice", mocks.schedule_email),
        patch(f"{SERVICE}.send_decision_email", mocks.decision_email),
        patch(f"{SERVICE}.send_otp_code", mocks.otp_email),
    ):
        yield mocks


@pytest.fixture
def applicant_factory():
    return make_applicant


@pytest.fixture
def slot_factory():
    return make_slot
