"""Daily sweep of mailbox messages archived more than 60 days ago."""

import logging
from datetime import datetime, timedelta
from typing import Any

from apscheduler.triggers.cron import CronTrigger

from school_portal.core.config import settings
from school_portal.core.retention import RetentionPolicy, purge_expired
from school_portal.core.scheduler import register_job
from school_portal.modules.messages.models import Message

logger = logging.getLogger(__name__)

JOB_ID_PURGE_ARCHIVED = "messages_purge_archived"

MESSAGE_RETENTION = RetentionPolicy(
    name=JOB_ID_PURGE_ARCHIVED,
    model=Message,
    timestamp_column=Message.archived_at,
    retention=timedelta(days=settings.message_retention_days),
    conditions=(Message.is_archived.is_(True),),
    batch_size=settings.retention_batch_size,
)


async def purge_archived_messages(now: datetime | None = None) -> dict[str, Any]:
    return await purge_expired(MESSAGE_RETENTION, now=now)


def register_message_jobs() -> None:
    register_job(
        job_id=JOB_ID_PURGE_ARCHIVED,
        func=purge_archived_messages,
        trigger=CronTrigger(hour=settings.retention_sweep_hour, timezone=settings.timezone),
    )
    logger.info(f"Registered job: {JOB_ID_PURGE_ARCHIVED}")
