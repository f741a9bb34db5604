"""
Unit tests for the retention sweep.

These tests cover:
- Expired-row queries for each resource
- Chunking into batches with one transaction each
- Audit rows written inside the batch transaction
- Failure semantics (read aborts, batch failures are counted)
"""

from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from school_portal.core.retention import RetentionPolicy, purge_expired
from school_portal.modules.activity_logs.models import ActivityLog
from school_portal.modules.announcements.jobs import ANNOUNCEMENT_RETENTION
from school_portal.modules.applicants.jobs import APPLICANT_RETENTION, _log_auto_deleted
from school_portal.modules.applicants.models import Applicant, FinalDecision
from school_portal.modules.messages.jobs import MESSAGE_RETENTION
from school_portal.modules.messages.models import Message

NOW = datetime(2026, 5, 1, 2, 0, tzinfo=UTC)


class FakeSessionFactory:
    """
    Hands out mock sessions. The first one answers the read query;
    every later one is a batch transaction.
    """

    def __init__(self, rows, fail_batches=()):
        self.rows = rows
        self.fail_batches = set(fail_batches)
        self.sessions = []

    def _session(self):
        index = len(self.sessions)
        session = AsyncMock()
        session.add = MagicMock()
        if index == 0:
            result = MagicMock()
            result.scalars.return_value.all.return_value = self.rows
            session.execute = AsyncMock(return_value=result)
        elif index in self.fail_batches:
            session.execute = AsyncMock(side_effect=RuntimeError("deadlock detected"))
        self.sessions.append(session)
        return session

    def __call__(self):
        @asynccontextmanager
        async def ctx():
            yield self._session()

        return ctx()


def _rows(count):
    return [SimpleNamespace(id=f"row-{i}") for i in range(count)]


def _policy(**overrides):
    defaults = dict(
        name="messages_purge_archived",
        model=Message,
        timestamp_column=Message.archived_at,
        retention=timedelta(days=60),
        conditions=(Message.is_archived.is_(True),),
        batch_size=500,
    )
    defaults.update(overrides)
    return RetentionPolicy(**defaults)


class TestPolicies:
    def test_applicant_query_compares_deletion_date(self):
        query = str(APPLICANT_RETENTION.build_query(NOW))
        assert "applicants.deletion_date <=" in query
        assert "applicants.deletion_date IS NOT NULL" in query

    def test_applicant_cutoff_is_now(self):
        assert APPLICANT_RETENTION.cutoff(NOW) == NOW

    def test_message_retention_is_sixty_days_on_archived_rows(self):
        query = MESSAGE_RETENTION.build_query(NOW)
        sql = str(query)

        assert "messages.archived_at <=" in sql
        assert "messages.is_archived IS" in sql
        assert MESSAGE_RETENTION.cutoff(NOW) == NOW - timedelta(days=60)
        assert NOW - timedelta(days=60) in query.compile().params.values()

    def test_announcement_retention_is_forty_five_days_on_archived_rows(self):
        sql = str(ANNOUNCEMENT_RETENTION.build_query(NOW))

        assert "announcements.archived_at <=" in sql
        assert "announcements.is_archived IS" in sql
        assert ANNOUNCEMENT_RETENTION.cutoff(NOW) == NOW - timedelta(days=45)

    def test_batch_size_is_500(self):
        for policy in (APPLICANT_RETENTION, MESSAGE_RETENTION, ANNOUNCEMENT_RETENTION):
            assert policy.batch_size == 500


class TestPurgeExpired:
    @pytest.mark.asyncio
    async def test_nothing_expired(self):
        factory = FakeSessionFactory([])

        results = await purge_expired(_policy(), now=NOW, session_factory=factory)

        assert results["total_deleted"] == 0
        assert results["batches"] == 0
        assert len(factory.sessions) == 1

    @pytest.mark.asyncio
    async def test_rows_are_deleted_in_batches_of_500(self):
        factory = FakeSessionFactory(_rows(1201))

        results = await purge_expired(_policy(), now=NOW, session_factory=factory)

        assert results["total_deleted"] == 1201
        assert results["batches"] == 3
        assert results["failed_batches"] == 0
        assert results["cutoff"] == (NOW - timedelta(days=60)).isoformat()
        # One read + three batch transactions, each committed
        assert len(factory.sessions) == 4
        for session in factory.sessions[1:]:
            session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_hook_sees_each_batch(self):
        seen = []

        async def hook(db, batch, now):
            seen.append((len(batch), now))

        factory = FakeSessionFactory(_rows(3))
        policy = _policy(batch_size=2, on_batch_deleted=hook)

        await purge_expired(policy, now=NOW, session_factory=factory)

        assert seen == [(2, NOW), (1, NOW)]

    @pytest.mark.asyncio
    async def test_failed_batch_is_counted_and_others_still_run(self):
        # Session 2 is the second batch
        factory = FakeSessionFactory(_rows(1200), fail_batches={2})

        results = await purge_expired(_policy(), now=NOW, session_factory=factory)

        assert results["batches"] == 2
        assert results["failed_batches"] == 1
        assert results["total_errors"] == 500
        assert results["total_deleted"] == 700
        factory.sessions[2].commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_read_failure_aborts(self):
        @asynccontextmanager
        async def broken():
            session = AsyncMock()
            session.execute = AsyncMock(side_effect=RuntimeError("connection refused"))
            yield session

        with pytest.raises(RuntimeError):
            await purge_expired(_policy(), now=NOW, session_factory=broken)


class TestApplicantAuditRows:
    @pytest.mark.asyncio
    async def test_one_log_entry_per_deleted_applicant(self):
        db = MagicMock()
        batch = [
            Applicant(
                id="a-1",
                first_name="Kofi",
                last_name="Boateng",
                email="kofi@example.com",
                final_decision=FinalDecision.REJECTED,
            ),
            Applicant(
                id="a-2",
                first_name="Efua",
                last_name="Owusu",
                email="efua@example.com",
                final_decision=FinalDecision.APPROVED,
            ),
        ]

        await _log_auto_deleted(db, batch, NOW)

        entries = [call.args[0] for call in db.add.call_args_list]
        assert len(entries) == 2
        assert all(isinstance(entry, ActivityLog) for entry in entries)
        assert {entry.action_type for entry in entries} == {"applicant_auto_deleted"}
        assert entries[0].performed_by == "system"
        assert entries[0].target_id == "a-1"
        assert entries[0].details == {
            "reason": "auto_expired",
            "name": "Kofi Boateng",
            "email": "kofi@example.com",
            "final_decision": "rejected",
        }
        assert entries[1].details["final_decision"] == "approved"
