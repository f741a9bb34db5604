"""
Announcements Service

Publish, archive, restore and delete portal announcements. Archiving
starts the 45 day retention window; restoring clears it.
"""

import logging
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from school_portal.core.auth import AuthenticatedIdentity
from school_portal.core.errors import ServiceError
from school_portal.modules.activity_logs import repository as activity_log
from school_portal.modules.announcements import repository
from school_portal.modules.announcements.models import Announcement
from school_portal.modules.announcements.schemas import AnnouncementCreate

logger = logging.getLogger(__name__)


class AnnouncementServiceError(ServiceError):
    """Base exception for announcement errors."""


class AnnouncementNotFoundError(AnnouncementServiceError):
    def __init__(self, announcement_id: str):
        super().__init__(
            message=f"Announcement {announcement_id} not found",
            error_code="ANNOUNCEMENT_NOT_FOUND",
            status_code=404,
        )


class AnnouncementStateError(AnnouncementServiceError):
    def __init__(self, message: str):
        super().__init__(message=message, error_code="NO_CHANGE", status_code=409)


async def _load(db: AsyncSession, announcement_id: str) -> Announcement:
    announcement = await repository.get_by_id(db, announcement_id)
    if not announcement:
        raise AnnouncementNotFoundError(announcement_id)
    return announcement


def _log(db: AsyncSession, action: str, announcement: Announcement, actor: AuthenticatedIdentity):
    activity_log.record(
        db,
        action,
        performed_by=actor.uid,
        performed_by_email=actor.email,
        target_type="announcement",
        target_id=announcement.id,
        details={"title": announcement.title},
    )


async def publish(
    db: AsyncSession, data: AnnouncementCreate, actor: AuthenticatedIdentity
) -> Announcement:
    announcement = await repository.create(
        db,
        title=data.title,
        body=data.body,
        audience=data.audience,
        author_uid=actor.uid,
    )
    _log(db, "announcement_created", announcement, actor)
    await db.commit()
    await db.refresh(announcement)
    logger.info(f"Announcement {announcement.id} published by {actor.uid}")
    return announcement


async def archive(
    db: AsyncSession,
    announcement_id: str,
    actor: AuthenticatedIdentity,
    now: datetime | None = None,
) -> Announcement:
    announcement = await _load(db, announcement_id)
    if announcement.is_archived:
        raise AnnouncementStateError("Announcement is already archived.")

    announcement.is_archived = True
    announcement.archived_at = now or datetime.now(UTC)
    _log(db, "announcement_archived", announcement, actor)
    await db.commit()
    return announcement


async def restore(
    db: AsyncSession,
    announcement_id: str,
    actor: AuthenticatedIdentity,
) -> Announcement:
    announcement = await _load(db, announcement_id)
    if not announcement.is_archived:
        raise AnnouncementStateError("Announcement is not archived.")

    announcement.is_archived = False
    announcement.archived_at = None
    _log(db, "announcement_restored", announcement, actor)
    await db.commit()
    return announcement


async def delete(db: AsyncSession, announcement_id: str, actor: AuthenticatedIdentity) -> None:
    announcement = await _load(db, announcement_id)
    _log(db, "announcement_deleted", announcement, actor)
    await repository.delete(db, announcement)
    await db.commit()
    logger.info(f"Announcement {announcement_id} deleted by {actor.uid}")
