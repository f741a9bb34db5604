"""Daily sweep of announcements archived more than 45 days ago."""

import logging
from datetime import datetime, timedelta
from typing import Any

from apscheduler.triggers.cron import CronTrigger

from school_portal.core.config import settings
from school_portal.core.retention import RetentionPolicy, purge_expired
from school_portal.core.scheduler import register_job
from school_portal.modules.announcements.models import Announcement

logger = logging.getLogger(__name__)

JOB_ID_PURGE_ARCHIVED = "announcements_purge_archived"

ANNOUNCEMENT_RETENTION = RetentionPolicy(
    name=JOB_ID_PURGE_ARCHIVED,
    model=Announcement,
    timestamp_column=Announcement.archived_at,
    retention=timedelta(days=settings.announcement_retention_days),
    conditions=(Announcement.is_archived.is_(True),),
    batch_size=settings.retention_batch_size,
)


async def purge_archived_announcements(now: datetime | None = None) -> dict[str, Any]:
    return await purge_expired(ANNOUNCEMENT_RETENTION, now=now)


def register_announcement_jobs() -> None:
    register_job(
        job_id=JOB_ID_PURGE_ARCHIVED,
        func=purge_archived_announcements,
        trigger=CronTrigger(hour=settings.retention_sweep_hour, timezone=settings.timezone),
    )
    logger.info(f"Registered job: {JOB_ID_PURGE_ARCHIVED}")
