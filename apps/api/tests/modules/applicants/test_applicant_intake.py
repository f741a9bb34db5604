"""
Unit tests for applicant intake.

These tests cover:
- Creating a pending applicant and sending the confirmation code
- Confirming the e-mail (account creation, pending -> submitted)
- Resending codes
- Document uploads
"""

from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from school_portal.core.otp import (
    INTAKE_OTP_POLICY,
    OtpCooldownError,
    OtpInvalidError,
    OtpIssuer,
    OtpNotFoundError,
)
from school_portal.modules.applicants.models import ApplicantStatus
from school_portal.modules.applicants.schemas import ApplicantCreate
from school_portal.modules.applicants.service import (
    ApplicantAccessDeniedError,
    ApplicantNotFoundError,
    ApplicantValidationError,
    DuplicateApplicantError,
    EmailAlreadyConfirmedError,
    add_document,
    confirm_email,
    create_applicant,
    list_my_notifications,
    send_confirmation_code,
)
from school_portal.modules.users.models import UserRole
from school_portal.modules.users.service import EmailAlreadyRegisteredError

SERVICE = "school_portal.modules.applicants.service"
NOW = datetime(2026, 3, 10, 9, 0, tzinfo=UTC)


@pytest.fixture
def otp(keyed_store, clock):
    return OtpIssuer(keyed_store, "intake", INTAKE_OTP_POLICY, clock=clock)


@pytest.fixture
def users():
    mock = MagicMock()
    mock.email_exists = AsyncMock(return_value=False)
    mock.create = AsyncMock(return_value=SimpleNamespace(id="user-new"))
    with (
        patch(f"{SERVICE}.UserRepository", mock),
        patch(f"{SERVICE}.hash_password", return_value="hashed"),
    ):
        yield mock


@pytest.fixture
def application_form():
    return ApplicantCreate(
        first_name="Ama",
        last_name="Mensah",
        email="ama.mensah@example.com",
        phone="+233201234567",
        position="Mathematics Teacher",
    )


class TestCreateApplicant:
    @pytest.mark.asyncio
    async def test_creates_pending_applicant_and_sends_code(
        self, mock_db, repo, notify, otp, clock, applicant_factory, application_form
    ):
        applicant = applicant_factory(ApplicantStatus.PENDING, uid=None)
        repo.create_applicant.return_value = applicant

        result, expires_at = await create_applicant(mock_db, otp, application_form)

        assert result is applicant
        assert expires_at == clock.now + timedelta(minutes=5)
        mock_db.commit.assert_awaited_once()
        notify.otp_email.assert_awaited_once()
        assert notify.otp_email.call_args.kwargs["to_email"] == applicant.email

    @pytest.mark.asyncio
    async def test_undelivered_code_keeps_applicant(
        self, mock_db, repo, notify, otp, applicant_factory, application_form
    ):
        applicant = applicant_factory(ApplicantStatus.PENDING, uid=None)
        repo.create_applicant.return_value = applicant
        notify.otp_email.return_value = False

        result, expires_at = await create_applicant(mock_db, otp, application_form)

        assert result is applicant
        assert expires_at is None
        with pytest.raises(OtpNotFoundError):
            await otp.verify(applicant.id, "123456")

    @pytest.mark.asyncio
    async def test_duplicate_email(self, mock_db, repo, otp, applicant_factory, application_form):
        repo.get_active_by_email.return_value = applicant_factory(ApplicantStatus.REVIEWING)

        with pytest.raises(DuplicateApplicantError):
            await create_applicant(mock_db, otp, application_form)

        repo.create_applicant.assert_not_awaited()


class TestConfirmEmail:
    @pytest.mark.asyncio
    async def test_confirm_creates_account_and_submits(
        self, mock_db, repo, notify, otp, users, applicant_factory
    ):
        applicant = applicant_factory(ApplicantStatus.PENDING, uid=None)
        repo.get_by_id.return_value = applicant
        issued = await otp.issue(applicant.id)

        result = await confirm_email(
            mock_db, otp, applicant.id, issued.code, "s3cure-pass", now=NOW
        )

        assert result.uid == "user-new"
        assert result.status == ApplicantStatus.SUBMITTED
        assert users.create.call_args.kwargs["role"] == UserRole.APPLICANT
        assert users.create.call_args.kwargs["password_hash"] == "hashed"
        mock_db.commit.assert_awaited_once()
        notify.applicant.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_wrong_code_changes_nothing(
        self, mock_db, repo, notify, otp, users, applicant_factory
    ):
        applicant = applicant_factory(ApplicantStatus.PENDING, uid=None)
        repo.get_by_id.return_value = applicant
        issued = await otp.issue(applicant.id)
        wrong = "000000" if issued.code != "000000" else "111111"

        with pytest.raises(OtpInvalidError):
            await confirm_email(mock_db, otp, applicant.id, wrong, "s3cure-pass", now=NOW)

        assert applicant.status == ApplicantStatus.PENDING
        assert applicant.uid is None
        users.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_email_already_has_account(
        self, mock_db, repo, otp, users, applicant_factory
    ):
        applicant = applicant_factory(ApplicantStatus.PENDING, uid=None)
        repo.get_by_id.return_value = applicant
        users.email_exists.return_value = True

        with pytest.raises(EmailAlreadyRegisteredError):
            await confirm_email(mock_db, otp, applicant.id, "123456", "s3cure-pass", now=NOW)

    @pytest.mark.asyncio
    async def test_already_confirmed(self, mock_db, repo, otp, users, applicant_factory):
        repo.get_by_id.return_value = applicant_factory(ApplicantStatus.SUBMITTED)

        with pytest.raises(EmailAlreadyConfirmedError):
            await confirm_email(mock_db, otp, "app-1", "123456", "s3cure-pass", now=NOW)


class TestSendConfirmationCode:
    @pytest.mark.asyncio
    async def test_first_resend_is_immediate_then_cooldown(
        self, mock_db, repo, notify, otp, applicant_factory
    ):
        applicant = applicant_factory(ApplicantStatus.PENDING, uid=None)
        repo.get_by_id.return_value = applicant
        await otp.issue(applicant.id)

        await send_confirmation_code(mock_db, otp, applicant.id)
        notify.otp_email.assert_awaited_once()

        with pytest.raises(OtpCooldownError):
            await send_confirmation_code(mock_db, otp, applicant.id)
        notify.otp_email.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_fresh_code_when_nothing_pending(
        self, mock_db, repo, notify, otp, clock, applicant_factory
    ):
        applicant = applicant_factory(ApplicantStatus.PENDING, uid=None)
        repo.get_by_id.return_value = applicant

        expires_at = await send_confirmation_code(mock_db, otp, applicant.id)

        assert expires_at == clock.now + timedelta(minutes=5)
        notify.otp_email.assert_awaited_once()


class TestDocuments:
    @pytest.fixture
    def storage(self):
        storage = MagicMock()
        storage.put = AsyncMock(return_value="http://files.test/applicants/a/cv.pdf")
        return storage

    @pytest.mark.asyncio
    async def test_owner_appends_document(
        self, mock_db, repo, storage, applicant_identity, applicant_factory
    ):
        applicant = applicant_factory(
            ApplicantStatus.SUBMITTED,
            uid=applicant_identity.uid,
            documents=[{"type": "id", "label": None, "url": "u0", "uploaded_at": "t0"}],
        )
        repo.get_by_id.return_value = applicant

        document = await add_document(
            mock_db,
            storage,
            applicant.id,
            applicant_identity,
            "cv",
            "Curriculum vitae",
            "cv.pdf",
            "application/pdf",
            b"%PDF-1.7",
            now=NOW,
        )

        assert document == {
            "type": "cv",
            "label": "Curriculum vitae",
            "url": "http://files.test/applicants/a/cv.pdf",
            "uploaded_at": NOW.isoformat(),
        }
        assert [d["type"] for d in applicant.documents] == ["id", "cv"]
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_overlapping_uploads_keep_both_documents(
        self, repo, admin_identity, applicant_factory
    ):
        committed: list[dict] = []
        loaded: dict[int, object] = {}

        async def get_by_id(db, applicant_id, for_update=False):
            loaded[id(db)] = applicant_factory(
                ApplicantStatus.SUBMITTED, id=applicant_id, documents=list(committed)
            )
            return loaded[id(db)]

        def make_session():
            db = AsyncMock()
            db.add = MagicMock()

            async def commit():
                committed[:] = loaded[id(db)].documents

            db.commit = AsyncMock(side_effect=commit)
            return db

        repo.get_by_id.side_effect = get_by_id
        first_db, second_db = make_session(), make_session()
        storage = MagicMock()

        async def put(prefix, data, filename, content_type):
            # The second upload finishes while the first file is still being written
            if filename == "diploma.pdf":
                await add_document(
                    second_db, storage, "app-1", admin_identity, "cv", None, "cv.pdf", None, b"cv"
                )
            return f"http://files.test/{filename}"

        storage.put = AsyncMock(side_effect=put)

        await add_document(
            first_db, storage, "app-1", admin_identity, "diploma", None, "diploma.pdf", None, b"d"
        )

        assert [d["type"] for d in committed] == ["cv", "diploma"]

    @pytest.mark.asyncio
    async def test_other_applicant_is_denied(
        self, mock_db, repo, storage, applicant_identity, applicant_factory
    ):
        repo.get_by_id.return_value = applicant_factory(ApplicantStatus.SUBMITTED)

        with pytest.raises(ApplicantAccessDeniedError):
            await add_document(
                mock_db, storage, "app-1", applicant_identity, "cv", None, "cv.pdf", None, b"x"
            )

        storage.put.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_file(self, mock_db, repo, storage, admin_identity):
        with pytest.raises(ApplicantValidationError):
            await add_document(
                mock_db, storage, "app-1", admin_identity, "cv", None, "cv.pdf", None, b""
            )


class TestNotifications:
    @pytest.mark.asyncio
    async def test_caller_without_application(self, mock_db, repo, applicant_identity):
        repo.get_by_uid.return_value = None

        with pytest.raises(ApplicantNotFoundError):
            await list_my_notifications(mock_db, applicant_identity)
