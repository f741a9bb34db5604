"""Admin mailbox database operations."""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Message


async def create(
    db: AsyncSession,
    *,
    sender_uid: str,
    sender_email: str,
    recipient_email: str,
    subject: str,
    body: str,
) -> Message:
    message = Message(
        sender_uid=sender_uid,
        sender_email=sender_email,
        recipient_email=recipient_email,
        subject=subject,
        body=body,
    )
    db.add(message)
    await db.flush()
    return message


async def get_by_id(db: AsyncSession, message_id: str) -> Message | None:
    return await db.get(Message, message_id)


async def list_folder(
    db: AsyncSession,
    archived: bool,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Message], int]:
    """Messages in the sent or archived folder, newest first."""
    condition = Message.is_archived.is_(archived)
    total = await db.scalar(select(func.count()).select_from(Message).where(condition))
    result = await db.execute(
        select(Message)
        .where(condition)
        .order_by(Message.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all()), total or 0


async def delete(db: AsyncSession, message: Message) -> None:
    await db.delete(message)
    await db.flush()
