"""
Applicants Background Jobs

Daily retention sweep for decided applicants.

A final decision sets deletion_date (now + 30 days). Once it has passed,
the applicant row is deleted (slots and notifications cascade) and one
activity log entry per applicant records what was removed, in the same
transaction as the delete.

Schedule:
- Daily at settings.retention_sweep_hour in the school time zone
- Can also be triggered manually via the debug endpoints
"""

import logging
from collections.abc import Sequence
from datetime import datetime, timedelta
from typing import Any

from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.ext.asyncio import AsyncSession

from school_portal.core.config import settings
from school_portal.core.retention import RetentionPolicy, purge_expired
from school_portal.core.scheduler import register_job
from school_portal.modules.activity_logs import repository as activity_log
from school_portal.modules.applicants.models import Applicant

logger = logging.getLogger(__name__)

JOB_ID_PURGE_EXPIRED = "applicants_purge_expired"


async def _log_auto_deleted(db: AsyncSession, batch: Sequence[Applicant], now: datetime) -> None:
    for applicant in batch:
        activity_log.record(
            db,
            "applicant_auto_deleted",
            target_type="applicant",
            target_id=applicant.id,
            created_at=now,
            details={
                "reason": "auto_expired",
                "name": applicant.full_name,
                "email": applicant.email,
                "final_decision": applicant.final_decision.value
                if applicant.final_decision
                else None,
            },
        )


APPLICANT_RETENTION = RetentionPolicy(
    name=JOB_ID_PURGE_EXPIRED,
    model=Applicant,
    timestamp_column=Applicant.deletion_date,
    # deletion_date already includes the retention window
    retention=timedelta(0),
    batch_size=settings.retention_batch_size,
    on_batch_deleted=_log_auto_deleted,
)


async def purge_expired_applicants(now: datetime | None = None) -> dict[str, Any]:
    """
    Delete applicants whose deletion_date is at or before now.

    Returns:
        Sweep summary (see core.retention.purge_expired)
    """
    return await purge_expired(APPLICANT_RETENTION, now=now)


def register_applicant_jobs() -> None:
    """Register the applicant retention sweep with the scheduler."""
    register_job(
        job_id=JOB_ID_PURGE_EXPIRED,
        func=purge_expired_applicants,
        trigger=CronTrigger(hour=settings.retention_sweep_hour, timezone=settings.timezone),
    )
    logger.info(
        f"Registered job: {JOB_ID_PURGE_EXPIRED} (daily at {settings.retention_sweep_hour:02d}:00)"
    )
