"""
Unit tests for job registration and manual triggering.
"""

from unittest.mock import AsyncMock, patch

import pytest
from apscheduler.triggers.cron import CronTrigger

from school_portal.core import scheduler


@pytest.fixture(autouse=True)
def clean_registry():
    with patch.dict(scheduler._job_registry, clear=True):
        yield


class TestManualTrigger:
    @pytest.mark.asyncio
    async def test_unknown_job(self):
        with pytest.raises(ValueError):
            await scheduler.trigger_job_manually("nope")

    @pytest.mark.asyncio
    async def test_job_result_is_returned(self):
        job = AsyncMock(return_value={"total_deleted": 3})
        scheduler.register_job("sweep", job, CronTrigger(hour=2))

        result = await scheduler.trigger_job_manually("sweep")

        assert result["status"] == "success"
        assert result["result"] == {"total_deleted": 3}

    @pytest.mark.asyncio
    async def test_job_failure_is_reported(self):
        failing = AsyncMock(side_effect=RuntimeError("db down"))
        scheduler.register_job("sweep", failing, CronTrigger(hour=2))

        result = await scheduler.trigger_job_manually("sweep")

        assert result["status"] == "error"
        assert result["error"] == "db down"


class TestRegistry:
    def test_registered_jobs_are_listed(self):
        scheduler.register_job("a", AsyncMock(), CronTrigger(hour=2))
        scheduler.register_job("b", AsyncMock(), CronTrigger(hour=2))

        assert [job["job_id"] for job in scheduler.list_registered_jobs()] == ["a", "b"]

    def test_pause_without_scheduler(self):
        assert scheduler.pause_job("a") is False

    def test_adding_a_job_without_scheduler_raises(self):
        job = scheduler.RegisteredJob(func=AsyncMock(), trigger=CronTrigger(hour=2))

        with patch.object(scheduler, "_scheduler", None), pytest.raises(RuntimeError):
            scheduler._add_to_scheduler("sweep", job)

    def test_retention_jobs_run_daily_at_two(self):
        from school_portal.modules.announcements import register_announcement_jobs
        from school_portal.modules.applicants import register_applicant_jobs
        from school_portal.modules.messages import register_message_jobs

        register_applicant_jobs()
        register_message_jobs()
        register_announcement_jobs()

        assert set(scheduler._job_registry) == {
            "applicants_purge_expired",
            "messages_purge_archived",
            "announcements_purge_archived",
        }
        for job in scheduler._job_registry.values():
            fields = {field.name: str(field) for field in job.trigger.fields}
            assert fields["hour"] == "2"
            assert fields["minute"] == "0"
