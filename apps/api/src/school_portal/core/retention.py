"""
Retention Sweeps

One routine that permanently deletes rows whose retention window has
passed. Each resource describes itself with a RetentionPolicy:

- model and timestamp column to compare against the cutoff
- retention window (cutoff = now - retention)
- extra predicates (e.g. only archived rows)
- batch size, one transaction per batch
- optional hook run inside each batch's transaction (audit rows)

Failure semantics:
- The read failing aborts the run: the error is logged and re-raised.
- A batch failing rolls back as a unit, is logged and counted, and the
  remaining batches still run. Nothing is retried; rows that survived are
  picked up by the next run because their timestamps stay in the past.
"""

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy import Select, delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from school_portal.core.database import async_session_maker

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 500

BatchHook = Callable[[AsyncSession, Sequence[Any], datetime], Awaitable[None]]


@dataclass(frozen=True)
class RetentionPolicy:
    """Describes which rows of a model expire and what happens when they do."""

    name: str
    model: type
    timestamp_column: Any
    retention: timedelta
    conditions: tuple[Any, ...] = field(default_factory=tuple)
    batch_size: int = DEFAULT_BATCH_SIZE
    on_batch_deleted: BatchHook | None = None

    def cutoff(self, now: datetime) -> datetime:
        return now - self.retention

    def build_query(self, now: datetime) -> Select:
        """Select every expired row as of now."""
        return select(self.model).where(
            self.timestamp_column.is_not(None),
            self.timestamp_column <= self.cutoff(now),
            *self.conditions,
        )


def _chunks(rows: Sequence[Any], size: int) -> list[Sequence[Any]]:
    return [rows[i : i + size] for i in range(0, len(rows), size)]


async def purge_expired(
    policy: RetentionPolicy,
    now: datetime | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> dict[str, Any]:
    """
    Delete every row that policy considers expired as of now.

    Args:
        policy: What to delete and how
        now: Reference time (defaults to the current UTC time)
        session_factory: Session factory (defaults to the application's)

    Returns:
        Dict with executed_at, cutoff, deleted_ids, total_deleted,
        batches, failed_batches and total_errors

    Raises:
        Exception: Whatever the read query raised
    """
    executed_at = now or datetime.now(UTC)
    cutoff = policy.cutoff(executed_at)
    factory = session_factory or async_session_maker

    logger.info(f"Starting {policy.name} sweep. Cutoff: {cutoff.isoformat()}")

    results: dict[str, Any] = {
        "job": policy.name,
        "executed_at": executed_at.isoformat(),
        "cutoff": cutoff.isoformat(),
        "deleted_ids": [],
        "total_deleted": 0,
        "batches": 0,
        "failed_batches": 0,
        "total_errors": 0,
    }

    try:
        async with factory() as db:
            result = await db.execute(policy.build_query(executed_at))
            rows = list(result.scalars().all())
    except Exception as e:
        logger.error(f"{policy.name} sweep aborted, query failed: {e}", exc_info=True)
        raise

    logger.info(f"Found {len(rows)} expired rows for {policy.name}")

    for batch in _chunks(rows, policy.batch_size):
        ids = [row.id for row in batch]
        try:
            async with factory() as db:
                await db.execute(delete(policy.model).where(policy.model.id.in_(ids)))
                if policy.on_batch_deleted is not None:
                    await policy.on_batch_deleted(db, batch, executed_at)
                await db.commit()
        except Exception as e:
            logger.error(
                f"{policy.name} batch of {len(ids)} rows failed: {e}",
                exc_info=True,
            )
            results["failed_batches"] += 1
            results["total_errors"] += len(ids)
            continue

        results["batches"] += 1
        results["total_deleted"] += len(ids)
        results["deleted_ids"].extend(str(row_id) for row_id in ids)

    logger.info(
        f"{policy.name} sweep completed. "
        f"Deleted: {results['total_deleted']}, Errors: {results['total_errors']}"
    )
    return results
