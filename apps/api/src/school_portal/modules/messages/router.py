"""
Admin Mailbox Router

Endpoints (admin only):
- POST /messages - Compose and send
- GET /messages?folder=sent|archived - List a folder
- POST /messages/{id}/archive - Move to archive
- POST /messages/{id}/restore - Move back to sent
- DELETE /messages/{id} - Delete permanently
"""

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from school_portal.core.auth import AuthenticatedIdentity, get_current_admin
from school_portal.core.database import get_db
from school_portal.core.errors import ServiceError, internal_error, raise_http_error
from school_portal.core.rate_limit import enforce_rate_limit
from school_portal.modules.messages import service
from school_portal.modules.messages.schemas import (
    MessageCreate,
    MessageFolder,
    MessageItem,
    MessageListResponse,
)

router = APIRouter()

RATE_LIMIT_SEND = (20, 3600)  # 20 messages per hour per admin


@router.post("", response_model=MessageItem, status_code=status.HTTP_201_CREATED)
async def send_message(
    body: MessageCreate,
    db: AsyncSession = Depends(get_db),
    admin: AuthenticatedIdentity = Depends(get_current_admin),
) -> MessageItem:
    await enforce_rate_limit(f"admin:send_message:{admin.uid}", *RATE_LIMIT_SEND)

    try:
        message = await service.send(db, body, admin)
    except Exception as e:
        raise internal_error(e, "sending message") from e
    return MessageItem.model_validate(message)


@router.get("", response_model=MessageListResponse)
async def list_messages(
    folder: MessageFolder = Query("sent"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    admin: AuthenticatedIdentity = Depends(get_current_admin),
) -> MessageListResponse:
    try:
        items, total = await service.list_folder(db, folder, limit=limit, offset=offset)
    except Exception as e:
        raise internal_error(e, "listing messages") from e

    return MessageListResponse(
        folder=folder,
        items=[MessageItem.model_validate(item) for item in items],
        total=total,
    )


@router.post("/{message_id}/archive", response_model=MessageItem)
async def archive_message(
    message_id: str,
    db: AsyncSession = Depends(get_db),
    admin: AuthenticatedIdentity = Depends(get_current_admin),
) -> MessageItem:
    try:
        message = await service.archive(db, message_id, admin)
    except ServiceError as e:
        raise_http_error(e)
    except Exception as e:
        raise internal_error(e, "archiving message") from e
    return MessageItem.model_validate(message)


@router.post("/{message_id}/restore", response_model=MessageItem)
async def restore_message(
    message_id: str,
    db: AsyncSession = Depends(get_db),
    admin: AuthenticatedIdentity = Depends(get_current_admin),
) -> MessageItem:
    try:
        message = await service.restore(db, message_id, admin)
    except ServiceError as e:
        raise_http_error(e)
    except Exception as e:
        raise internal_error(e, "restoring message") from e
    return MessageItem.model_validate(message)


@router.delete("/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_message(
    message_id: str,
    db: AsyncSession = Depends(get_db),
    admin: AuthenticatedIdentity = Depends(get_current_admin),
) -> Response:
    try:
        await service.delete(db, message_id, admin)
    except ServiceError as e:
        raise_http_error(e)
    except Exception as e:
        raise internal_error(e, "deleting message") from e
    return Response(status_code=status.HTTP_204_NO_CONTENT)
