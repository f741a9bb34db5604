"""Announcement database operations."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Announcement, AnnouncementAudience


async def create(
    db: AsyncSession,
    *,
    title: str,
    body: str,
    audience: AnnouncementAudience,
    author_uid: str,
) -> Announcement:
    announcement = Announcement(title=title, body=body, audience=audience, author_uid=author_uid)
    db.add(announcement)
    await db.flush()
    return announcement


async def get_by_id(db: AsyncSession, announcement_id: str) -> Announcement | None:
    return await db.get(Announcement, announcement_id)


async def list_announcements(
    db: AsyncSession,
    archived: bool,
    audience: AnnouncementAudience | None = None,
    limit: int = 50,
) -> list[Announcement]:
    """Active or archived announcements, newest first."""
    stmt = select(Announcement).where(Announcement.is_archived.is_(archived))
    if audience is not None:
        stmt = stmt.where(Announcement.audience.in_([audience, AnnouncementAudience.ALL]))
    order = Announcement.archived_at.desc() if archived else Announcement.created_at.desc()
    result = await db.execute(stmt.order_by(order).limit(limit))
    return list(result.scalars().all())


async def delete(db: AsyncSession, announcement: Announcement) -> None:
    await db.delete(announcement)
    await db.flush()
