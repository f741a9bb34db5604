"""
Unit tests for the applicant's notification inbox and the admin/applicant message thread.
"""

from unittest.mock import AsyncMock, patch

import pytest

from school_portal.modules.applicants.models import ApplicantNotification, NotificationType
from school_portal.modules.applicants.service import (
    MESSAGE_CATEGORY,
    ApplicantNotFoundError,
    NotificationNotFoundError,
    count_my_unread_notifications,
    delete_my_notification,
    list_applicant_messages,
    mark_all_my_notifications_read,
    mark_my_notification_read,
    send_message_to_admins,
    send_message_to_applicant,
)

SERVICE = "school_portal.modules.applicants.service"
REPO = f"{SERVICE}.repository"


def make_notification(applicant_id: str, **overrides) -> ApplicantNotification:
    values = dict(
        id="n-1",
        applicant_id=applicant_id,
        title="Interview scheduled",
        message="See you on Friday.",
        type=NotificationType.INFO,
        category=None,
        is_read=False,
        from_admin=True,
    )
    values.update(overrides)
    return ApplicantNotification(**values)


@pytest.fixture
def me(repo, applicant_factory, applicant_identity):
    applicant = applicant_factory(uid=applicant_identity.uid)
    repo.get_by_uid.return_value = applicant
    return applicant


class TestInbox:
    @pytest.mark.asyncio
    async def test_unread_count(self, mock_db, me, applicant_identity):
        with patch(f"{REPO}.count_unread_notifications", AsyncMock(return_value=3)) as count:
            assert await count_my_unread_notifications(mock_db, applicant_identity) == 3

        count.assert_awaited_once_with(mock_db, me.id)

    @pytest.mark.asyncio
    async def test_mark_read(self, mock_db, me, applicant_identity):
        notification = make_notification(me.id)
        with patch(f"{REPO}.get_notification", AsyncMock(return_value=notification)):
            result = await mark_my_notification_read(mock_db, applicant_identity, "n-1")

        assert result.is_read is True
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_mark_read_twice_does_not_write(self, mock_db, me, applicant_identity):
        notification = make_notification(me.id, is_read=True)
        with patch(f"{REPO}.get_notification", AsyncMock(return_value=notification)):
            await mark_my_notification_read(mock_db, applicant_identity, "n-1")

        mock_db.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_read_all(self, mock_db, me, applicant_identity):
        with patch(f"{REPO}.mark_all_notifications_read", AsyncMock(return_value=4)) as mark:
            assert await mark_all_my_notifications_read(mock_db, applicant_identity) == 4

        mark.assert_awaited_once_with(mock_db, me.id)
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_delete(self, mock_db, me, applicant_identity):
        notification = make_notification(me.id)
        with patch(f"{REPO}.get_notification", AsyncMock(return_value=notification)):
            await delete_my_notification(mock_db, applicant_identity, "n-1")

        mock_db.delete.assert_awaited_once_with(notification)
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_someone_elses_notification_is_not_found(
        self, mock_db, me, applicant_identity
    ):
        lookup = AsyncMock(return_value=None)
        with (
            patch(f"{REPO}.get_notification", lookup),
            pytest.raises(NotificationNotFoundError) as exc_info,
        ):
            await delete_my_notification(mock_db, applicant_identity, "n-other")

        lookup.assert_awaited_once_with(mock_db, me.id, "n-other")
        assert exc_info.value.status_code == 404
        mock_db.delete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_applicant_record(self, mock_db, repo, applicant_identity):
        repo.get_by_uid.return_value = None

        with pytest.raises(ApplicantNotFoundError):
            await count_my_unread_notifications(mock_db, applicant_identity)


class TestMessages:
    @pytest.mark.asyncio
    async def test_admin_message_is_stored_and_mailed(
        self, mock_db, repo, applicant_factory, admin_identity
    ):
        applicant = applicant_factory()
        repo.get_by_id.return_value = applicant
        mail = AsyncMock(return_value=True)

        with patch(f"{SERVICE}.send_admin_message", mail):
            message, delivered = await send_message_to_applicant(
                mock_db, applicant.id, "Documents", "Please upload your diploma.", admin_identity
            )

        assert delivered is True
        assert message.category == MESSAGE_CATEGORY
        assert message.from_admin is True
        assert message.applicant_id == applicant.id
        mail.assert_awaited_once()
        assert mail.await_args.kwargs["to_email"] == applicant.email
        mock_db.commit.assert_awaited_once()
        mock_db.refresh.assert_awaited_once_with(message)

    @pytest.mark.asyncio
    async def test_undelivered_admin_message_is_kept(
        self, mock_db, repo, applicant_factory, admin_identity
    ):
        applicant = applicant_factory()
        repo.get_by_id.return_value = applicant

        with patch(f"{SERVICE}.send_admin_message", AsyncMock(return_value=False)):
            message, delivered = await send_message_to_applicant(
                mock_db, applicant.id, "Documents", "Please upload your diploma.", admin_identity
            )

        assert delivered is False
        mock_db.add.assert_any_call(message)
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_applicant_message_is_marked_as_theirs(
        self, mock_db, me, applicant_identity
    ):
        message = await send_message_to_admins(
            mock_db, applicant_identity, "Question", "Can I bring a laptop?"
        )

        assert message.from_admin is False
        assert message.category == MESSAGE_CATEGORY
        assert message.applicant_id == me.id
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_thread_lists_message_category(
        self, mock_db, repo, applicant_factory
    ):
        applicant = applicant_factory()
        repo.get_by_id.return_value = applicant
        thread = [make_notification(applicant.id, category=MESSAGE_CATEGORY)]

        with patch(f"{REPO}.list_notifications", AsyncMock(return_value=thread)) as listing:
            assert await list_applicant_messages(mock_db, applicant.id) == thread

        listing.assert_awaited_once_with(mock_db, applicant.id, category=MESSAGE_CATEGORY)
