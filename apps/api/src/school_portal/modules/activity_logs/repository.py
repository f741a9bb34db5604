"""
Activity Log Repository

`record` only adds the row to the session, so the entry commits or rolls
back together with the action it describes.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import SYSTEM_ACTOR, ActivityLog


def record(
    db: AsyncSession,
    action_type: str,
    *,
    performed_by: str = SYSTEM_ACTOR,
    performed_by_email: str | None = None,
    target_type: str | None = None,
    target_id: Any = None,
    details: dict[str, Any] | None = None,
    created_at: datetime | None = None,
) -> ActivityLog:
    """Add an activity log entry to the current transaction."""
    entry = ActivityLog(
        action_type=action_type,
        performed_by=performed_by,
        performed_by_email=performed_by_email,
        target_type=target_type,
        target_id=str(target_id) if target_id is not None else None,
        details=details,
    )
    if created_at is not None:
        entry.created_at = created_at
    db.add(entry)
    return entry


async def list_logs(
    db: AsyncSession,
    *,
    action_type: str | None = None,
    target_id: str | None = None,
    performed_by: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[ActivityLog], int]:
    """List entries newest first. Returns (items, total)."""
    conditions = []
    if action_type:
        conditions.append(ActivityLog.action_type == action_type)
    if target_id:
        conditions.append(ActivityLog.target_id == target_id)
    if performed_by:
        conditions.append(ActivityLog.performed_by == performed_by)

    total = await db.scalar(select(func.count()).select_from(ActivityLog).where(*conditions))
    result = await db.execute(
        select(ActivityLog)
        .where(*conditions)
        .order_by(ActivityLog.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all()), total or 0
