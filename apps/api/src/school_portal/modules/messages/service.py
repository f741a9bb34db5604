"""
Admin Mailbox Service

Messages are stored first and then e-mailed. A failed delivery is
recorded on the message (delivered = False) and does not undo it.
"""

import logging
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from school_portal.core.auth import AuthenticatedIdentity
from school_portal.core.email import send_admin_message
from school_portal.core.errors import ServiceError
from school_portal.core.notify import commit_then_notify
from school_portal.modules.activity_logs import repository as activity_log
from school_portal.modules.messages import repository
from school_portal.modules.messages.models import Message
from school_portal.modules.messages.schemas import MessageCreate

logger = logging.getLogger(__name__)


class MessageServiceError(ServiceError):
    """Base exception for mailbox errors."""


class MessageNotFoundError(MessageServiceError):
    def __init__(self, message_id: str):
        super().__init__(
            message=f"Message {message_id} not found",
            error_code="MESSAGE_NOT_FOUND",
            status_code=404,
        )


class MessageStateError(MessageServiceError):
    def __init__(self, message: str):
        super().__init__(message=message, error_code="NO_CHANGE", status_code=409)


async def _load(db: AsyncSession, message_id: str) -> Message:
    message = await repository.get_by_id(db, message_id)
    if not message:
        raise MessageNotFoundError(message_id)
    return message


async def send(db: AsyncSession, data: MessageCreate, actor: AuthenticatedIdentity) -> Message:
    """Store the message, then e-mail it."""
    message = await repository.create(
        db,
        sender_uid=actor.uid,
        sender_email=actor.email,
        recipient_email=str(data.recipient_email),
        subject=data.subject,
        body=data.body,
    )
    activity_log.record(
        db,
        "message_sent",
        performed_by=actor.uid,
        performed_by_email=actor.email,
        target_type="message",
        target_id=message.id,
        details={"recipient": message.recipient_email, "subject": message.subject},
    )

    failed = await commit_then_notify(
        db,
        f"message {message.id}",
        [
            (
                "email",
                lambda: send_admin_message(
                    to_email=message.recipient_email,
                    subject=message.subject,
                    message=message.body,
                    sender_name=actor.email,
                ),
            ),
        ],
    )

    if not failed:
        message.delivered = True
        await db.commit()
    else:
        logger.warning(f"Message {message.id} stored but not delivered")
    return message


async def list_folder(
    db: AsyncSession,
    folder: str,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Message], int]:
    return await repository.list_folder(db, archived=folder == "archived", limit=limit, offset=offset)


async def archive(
    db: AsyncSession,
    message_id: str,
    actor: AuthenticatedIdentity,
    now: datetime | None = None,
) -> Message:
    message = await _load(db, message_id)
    if message.is_archived:
        raise MessageStateError("Message is already archived.")

    message.is_archived = True
    message.archived_at = now or datetime.now(UTC)
    await db.commit()
    logger.info(f"Message {message_id} archived by {actor.uid}")
    return message


async def restore(db: AsyncSession, message_id: str, actor: AuthenticatedIdentity) -> Message:
    message = await _load(db, message_id)
    if not message.is_archived:
        raise MessageStateError("Message is not archived.")

    message.is_archived = False
    message.archived_at = None
    await db.commit()
    logger.info(f"Message {message_id} restored by {actor.uid}")
    return message


async def delete(db: AsyncSession, message_id: str, actor: AuthenticatedIdentity) -> None:
    message = await _load(db, message_id)
    activity_log.record(
        db,
        "message_deleted",
        performed_by=actor.uid,
        performed_by_email=actor.email,
        target_type="message",
        target_id=message.id,
        details={"subject": message.subject},
    )
    await repository.delete(db, message)
    await db.commit()
