"""
Unit tests for interview and demo scheduling.

These tests cover:
- Exact-moment conflicts across interviews and demos
- Concurrent bookings caught by the unique index
- Rescheduling onto the slot's own moment
- Cancellation paths and their target statuses
- Demo dates in the past
"""

from datetime import UTC, date, datetime
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import IntegrityError

from school_portal.modules.applicants.models import ApplicantStatus, SlotKind
from school_portal.modules.applicants.schemas import DemoRequest, SessionRequest
from school_portal.modules.applicants.service import (
    ApplicantNotFoundError,
    ApplicantValidationError,
    InvalidTransitionError,
    ScheduleConflictError,
    SessionAlreadyScheduledError,
    SlotApplicantMismatchError,
    SlotNotFoundError,
    cancel_demo,
    cancel_interview,
    complete_demo,
    complete_interview,
    list_conflicts,
    reschedule_interview,
    schedule_demo,
    schedule_interview,
)

NOW = datetime(2026, 3, 10, 9, 0, tzinfo=UTC)
SLOT_KEY = "2026-03-20T10:00:00+00:00"


@pytest.fixture
def session_request():
    return SessionRequest(
        scheduled_date=date(2026, 3, 20),
        scheduled_time="10:00",
        mode="in_person",
        location="Main campus",
    )


@pytest.fixture
def demo_request():
    return DemoRequest(
        scheduled_date=date(2026, 3, 25),
        scheduled_time="11:30",
        mode="in_person",
        location="Room 4",
        subject="Algebra",
    )


class TestScheduleInterview:
    @pytest.mark.asyncio
    async def test_success(
        self, mock_db, repo, notify, admin_identity, applicant_factory, slot_factory, session_request
    ):
        applicant = applicant_factory(ApplicantStatus.REVIEWING)
        slot = slot_factory(applicant)
        repo.get_by_id.return_value = applicant
        repo.create_slot.return_value = slot

        result, booked = await schedule_interview(
            mock_db, applicant.id, session_request, admin_identity, now=NOW
        )

        assert booked is slot
        assert result.status == ApplicantStatus.INTERVIEW_SCHEDULED
        assert result.status_updated_by == admin_identity.uid
        assert result.interview["slot_id"] == slot.id
        assert repo.create_slot.call_args.kwargs["datetime_iso"] == SLOT_KEY
        assert repo.create_slot.call_args.kwargs["kind"] == SlotKind.INTERVIEW
        mock_db.commit.assert_awaited_once()
        notify.applicant.assert_awaited_once()
        notify.schedule_email.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_conflict_leaves_everything_untouched(
        self, mock_db, repo, notify, admin_identity, applicant_factory, slot_factory, session_request
    ):
        applicant = applicant_factory(ApplicantStatus.REVIEWING)
        other = applicant_factory(ApplicantStatus.DEMO_SCHEDULED)
        repo.get_by_id.return_value = applicant
        repo.find_slot_conflict.return_value = slot_factory(other, SlotKind.DEMO)

        with pytest.raises(ScheduleConflictError) as exc_info:
            await schedule_interview(mock_db, applicant.id, session_request, admin_identity, now=NOW)

        assert exc_info.value.status_code == 409
        assert exc_info.value.error_code == "SCHEDULE_CONFLICT"
        conflict = exc_info.value.extra["conflict"]
        assert conflict["datetime_iso"] == SLOT_KEY
        assert conflict["applicant_id"] == other.id
        assert conflict["kind"] == "demo"

        assert applicant.status == ApplicantStatus.REVIEWING
        assert applicant.interview is None
        repo.create_slot.assert_not_awaited()
        mock_db.commit.assert_not_awaited()
        notify.applicant.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_concurrent_booking_rejected_by_unique_index(
        self, mock_db, repo, notify, admin_identity, applicant_factory, slot_factory, session_request
    ):
        applicant = applicant_factory(ApplicantStatus.REVIEWING)
        repo.get_by_id.return_value = applicant
        repo.create_slot.return_value = slot_factory(applicant)
        mock_db.commit = AsyncMock(
            side_effect=IntegrityError("INSERT", {}, Exception("duplicate key"))
        )

        with pytest.raises(ScheduleConflictError):
            await schedule_interview(mock_db, applicant.id, session_request, admin_identity, now=NOW)

        mock_db.rollback.assert_awaited_once()
        notify.schedule_email.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_status_creates_no_slot(
        self, mock_db, repo, notify, admin_identity, applicant_factory, session_request
    ):
        applicant = applicant_factory(ApplicantStatus.PENDING)
        repo.get_by_id.return_value = applicant

        with pytest.raises(InvalidTransitionError) as exc_info:
            await schedule_interview(mock_db, applicant.id, session_request, admin_identity, now=NOW)

        assert exc_info.value.error_code == "INVALID_STATUS_TRANSITION"
        repo.create_slot.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_open_interview_blocks_second_booking(
        self, mock_db, repo, notify, admin_identity, applicant_factory, session_request
    ):
        applicant = applicant_factory(
            ApplicantStatus.INTERVIEW_SCHEDULED,
            interview={"slot_id": "slot-1", "completed": False},
        )
        repo.get_by_id.return_value = applicant

        with pytest.raises(SessionAlreadyScheduledError):
            await schedule_interview(mock_db, applicant.id, session_request, admin_identity, now=NOW)

    @pytest.mark.asyncio
    async def test_unknown_applicant(self, mock_db, repo, admin_identity, session_request):
        repo.get_by_id.return_value = None

        with pytest.raises(ApplicantNotFoundError):
            await schedule_interview(mock_db, "missing", session_request, admin_identity, now=NOW)


class TestRescheduleInterview:
    @pytest.mark.asyncio
    async def test_same_moment_is_not_a_conflict_with_itself(
        self, mock_db, repo, notify, admin_identity, applicant_factory, slot_factory, session_request
    ):
        applicant = applicant_factory(ApplicantStatus.INTERVIEW_SCHEDULED)
        slot = slot_factory(applicant)
        repo.get_by_id.return_value = applicant
        repo.get_slot.return_value = slot

        result, moved = await reschedule_interview(
            mock_db, applicant.id, slot.id, session_request, admin_identity, now=NOW
        )

        repo.find_slot_conflict.assert_awaited_once_with(mock_db, SLOT_KEY, exclude_id=slot.id)
        assert moved.datetime_iso == SLOT_KEY
        assert result.status == ApplicantStatus.INTERVIEW_SCHEDULED
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_move_updates_slot_and_snapshot(
        self, mock_db, repo, notify, admin_identity, applicant_factory, slot_factory
    ):
        applicant = applicant_factory(ApplicantStatus.INTERVIEW_SCHEDULED)
        slot = slot_factory(applicant)
        repo.get_by_id.return_value = applicant
        repo.get_slot.return_value = slot
        body = SessionRequest(scheduled_date=date(2026, 3, 21), scheduled_time="15:45")

        result, moved = await reschedule_interview(
            mock_db, applicant.id, slot.id, body, admin_identity, now=NOW
        )

        assert moved.datetime_iso == "2026-03-21T15:45:00+00:00"
        assert result.interview["time"] == "15:45"
        assert result.interview["date"] == "2026-03-21"

    @pytest.mark.asyncio
    async def test_conflict_with_another_session(
        self, mock_db, repo, notify, admin_identity, applicant_factory, slot_factory, session_request
    ):
        applicant = applicant_factory(ApplicantStatus.INTERVIEW_SCHEDULED)
        slot = slot_factory(applicant, datetime_iso="2026-03-19T08:00:00+00:00")
        repo.get_by_id.return_value = applicant
        repo.get_slot.return_value = slot
        repo.find_slot_conflict.return_value = slot_factory(applicant_factory())

        with pytest.raises(ScheduleConflictError):
            await reschedule_interview(
                mock_db, applicant.id, slot.id, session_request, admin_identity, now=NOW
            )

        assert slot.datetime_iso == "2026-03-19T08:00:00+00:00"
        mock_db.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_slot_of_another_applicant(
        self, mock_db, repo, admin_identity, applicant_factory, slot_factory, session_request
    ):
        applicant = applicant_factory(ApplicantStatus.INTERVIEW_SCHEDULED)
        repo.get_by_id.return_value = applicant
        repo.get_slot.return_value = slot_factory(applicant_factory())

        with pytest.raises(SlotApplicantMismatchError) as exc_info:
            await reschedule_interview(
                mock_db, applicant.id, "slot-x", session_request, admin_identity, now=NOW
            )

        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_slot(self, mock_db, repo, admin_identity, applicant_factory, session_request):
        repo.get_by_id.return_value = applicant_factory(ApplicantStatus.INTERVIEW_SCHEDULED)

        with pytest.raises(SlotNotFoundError):
            await reschedule_interview(
                mock_db, "app-1", "missing", session_request, admin_identity, now=NOW
            )


class TestCancelAndCompleteInterview:
    @pytest.mark.asyncio
    async def test_cancel_returns_to_reviewing(
        self, mock_db, repo, notify, admin_identity, applicant_factory, slot_factory
    ):
        applicant = applicant_factory(
            ApplicantStatus.INTERVIEW_SCHEDULED, interview={"slot_id": "x", "completed": False}
        )
        slot = slot_factory(applicant)
        repo.get_by_id.return_value = applicant
        repo.get_slot.return_value = slot

        result = await cancel_interview(mock_db, applicant.id, slot.id, admin_identity, now=NOW)

        assert result.status == ApplicantStatus.REVIEWING
        assert result.interview is None
        repo.delete_slot.assert_awaited_once_with(mock_db, slot)
        mock_db.commit.assert_awaited_once()
        notify.schedule_email.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_complete_marks_snapshot(
        self, mock_db, repo, admin_identity, applicant_factory, slot_factory
    ):
        applicant = applicant_factory(ApplicantStatus.INTERVIEW_SCHEDULED)
        slot = slot_factory(applicant)
        repo.get_by_id.return_value = applicant
        repo.get_slot.return_value = slot

        result = await complete_interview(mock_db, applicant.id, slot.id, admin_identity, now=NOW)

        assert result.status == ApplicantStatus.INTERVIEW_COMPLETED
        assert result.interview["completed"] is True
        assert result.interview["completed_at"] == NOW.isoformat()


class TestDemos:
    @pytest.mark.asyncio
    async def test_past_date_is_rejected_before_anything_loads(
        self, mock_db, repo, admin_identity
    ):
        body = DemoRequest(scheduled_date=date(2026, 3, 9), scheduled_time="10:00")

        with pytest.raises(ApplicantValidationError) as exc_info:
            await schedule_demo(mock_db, "app-1", body, admin_identity, now=NOW)

        assert exc_info.value.error_code == "VALIDATION_ERROR"
        repo.get_by_id.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_today_is_allowed(
        self, mock_db, repo, notify, admin_identity, applicant_factory, slot_factory
    ):
        applicant = applicant_factory(ApplicantStatus.INTERVIEW_COMPLETED)
        repo.get_by_id.return_value = applicant
        repo.create_slot.return_value = slot_factory(applicant, SlotKind.DEMO)
        body = DemoRequest(scheduled_date=date(2026, 3, 10), scheduled_time="16:00")

        result, _ = await schedule_demo(mock_db, applicant.id, body, admin_identity, now=NOW)

        assert result.status == ApplicantStatus.DEMO_SCHEDULED

    @pytest.mark.asyncio
    async def test_schedule_demo(
        self, mock_db, repo, notify, admin_identity, applicant_factory, slot_factory, demo_request
    ):
        applicant = applicant_factory(ApplicantStatus.INTERVIEW_COMPLETED)
        slot = slot_factory(applicant, SlotKind.DEMO)
        repo.get_by_id.return_value = applicant
        repo.create_slot.return_value = slot

        result, _ = await schedule_demo(mock_db, applicant.id, demo_request, admin_identity, now=NOW)

        assert result.status == ApplicantStatus.DEMO_SCHEDULED
        assert result.demo_teaching["slot_id"] == slot.id
        assert result.demo_teaching["subject"] == "Algebra"
        assert repo.create_slot.call_args.kwargs["kind"] == SlotKind.DEMO
        assert repo.create_slot.call_args.kwargs["datetime_iso"] == "2026-03-25T11:30:00+00:00"

    @pytest.mark.asyncio
    async def test_demo_conflicts_with_interview_at_same_moment(
        self, mock_db, repo, notify, admin_identity, applicant_factory, slot_factory, demo_request
    ):
        applicant = applicant_factory(ApplicantStatus.INTERVIEW_COMPLETED)
        repo.get_by_id.return_value = applicant
        repo.find_slot_conflict.return_value = slot_factory(
            applicant_factory(), SlotKind.INTERVIEW, datetime_iso="2026-03-25T11:30:00+00:00"
        )

        with pytest.raises(ScheduleConflictError):
            await schedule_demo(mock_db, applicant.id, demo_request, admin_identity, now=NOW)

        assert applicant.status == ApplicantStatus.INTERVIEW_COMPLETED
        assert applicant.demo_teaching is None

    @pytest.mark.asyncio
    async def test_demo_requires_completed_interview(
        self, mock_db, repo, notify, admin_identity, applicant_factory, demo_request
    ):
        repo.get_by_id.return_value = applicant_factory(ApplicantStatus.REVIEWING)

        with pytest.raises(InvalidTransitionError):
            await schedule_demo(mock_db, "app-1", demo_request, admin_identity, now=NOW)

        repo.create_slot.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cancel_demo_returns_to_interview_completed(
        self, mock_db, repo, notify, admin_identity, applicant_factory, slot_factory
    ):
        applicant = applicant_factory(ApplicantStatus.DEMO_SCHEDULED)
        slot = slot_factory(applicant, SlotKind.DEMO)
        applicant.demo_teaching = {"slot_id": slot.id, "completed": False}
        repo.get_by_id.return_value = applicant
        repo.get_slot.return_value = slot

        result = await cancel_demo(mock_db, applicant.id, admin_identity, now=NOW)

        assert result.status == ApplicantStatus.INTERVIEW_COMPLETED
        assert result.demo_teaching is None
        repo.delete_slot.assert_awaited_once_with(mock_db, slot)

    @pytest.mark.asyncio
    async def test_cancel_without_demo(self, mock_db, repo, admin_identity, applicant_factory):
        repo.get_by_id.return_value = applicant_factory(ApplicantStatus.INTERVIEW_COMPLETED)

        with pytest.raises(SlotNotFoundError):
            await cancel_demo(mock_db, "app-1", admin_identity, now=NOW)

    @pytest.mark.asyncio
    async def test_complete_demo(self, mock_db, repo, admin_identity, applicant_factory):
        applicant = applicant_factory(
            ApplicantStatus.DEMO_SCHEDULED,
            demo_teaching={"slot_id": "slot-1", "completed": False},
        )
        repo.get_by_id.return_value = applicant

        result = await complete_demo(mock_db, applicant.id, admin_identity, now=NOW)

        assert result.status == ApplicantStatus.DEMO_COMPLETED
        assert result.demo_teaching["completed"] is True


class TestListConflicts:
    @pytest.mark.asyncio
    async def test_exact_match_with_cap(self, mock_db, repo):
        key, _ = await list_conflicts(mock_db, f" {SLOT_KEY} ")

        assert key == SLOT_KEY
        repo.list_slots_at.assert_awaited_once_with(mock_db, SLOT_KEY, limit=50)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "value",
        [
            "2026-03-20T10:00:00Z",
            "2026-03-20T10:00:00.000Z",
            "2026-03-20T10:00:00 00:00",
            "2026-03-20T12:00:00+02:00",
        ],
    )
    async def test_other_renderings_find_the_booked_slot(
        self, mock_db, repo, applicant_factory, slot_factory, value
    ):
        slot = slot_factory(applicant_factory())
        repo.list_slots_at.side_effect = lambda db, key, limit: [slot] if key == SLOT_KEY else []

        key, slots = await list_conflicts(mock_db, value)

        assert key == SLOT_KEY
        assert slots == [slot]

    @pytest.mark.asyncio
    async def test_unparseable_value_is_a_validation_error(self, mock_db, repo):
        with pytest.raises(ApplicantValidationError):
            await list_conflicts(mock_db, "next tuesday")

        repo.list_slots_at.assert_not_awaited()
