"""
Commit, Then Notify

State changes are committed first. Notifications that follow (e-mails,
applicant notification rows) run afterwards, each in its own try block, so
a failed side effect is logged and never undoes the committed change.

Usage:
    await commit_then_notify(
        db,
        f"final decision for applicant {applicant.id}",
        [
            ("notification", lambda: repository.create_notification(db, ...)),
            ("email", lambda: send_decision_email(...)),
        ],
    )
"""

import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

NotifyStep = tuple[str, Callable[[], Awaitable[Any]]]


async def notify_best_effort(
    context: str,
    steps: Sequence[NotifyStep],
    db: AsyncSession | None = None,
) -> list[str]:
    """
    Run side effects one by one, isolating failures.

    A step fails when it raises or returns False (the e-mail helpers report
    delivery that way). When a db session is given, a raising step's
    pending changes are rolled back so later steps start clean.

    Args:
        context: Human-readable description for log lines
        steps: (label, zero-argument coroutine factory) pairs
        db: Session used by steps that write to the database

    Returns:
        Labels of the steps that failed
    """
    failed: list[str] = []

    for label, step in steps:
        try:
            result = await step()
        except Exception as e:
            logger.error(f"{label} failed after {context}: {e}", exc_info=True)
            failed.append(label)
            if db is not None:
                await db.rollback()
            continue

        if result is False:
            logger.warning(f"{label} was not delivered after {context}")
            failed.append(label)

    return failed


async def commit_then_notify(
    db: AsyncSession,
    context: str,
    steps: Sequence[NotifyStep],
) -> list[str]:
    """
    Commit the session, then run notification steps best-effort.

    The commit is authoritative: if it raises, no step runs and the error
    propagates to the caller.

    Returns:
        Labels of the steps that failed (empty when everything went out)
    """
    await db.commit()
    return await notify_best_effort(context, steps, db=db)
