"""
Announcements Router

Endpoints:
- GET /announcements - Active announcements (public)
- GET /announcements/archived - Archived announcements (admin)
- POST /announcements - Publish (admin)
- POST /announcements/{id}/archive - Archive (admin)
- POST /announcements/{id}/restore - Restore (admin)
- DELETE /announcements/{id} - Delete permanently (admin)
"""

import logging

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from school_portal.core.auth import AuthenticatedIdentity, get_current_admin
from school_portal.core.database import get_db
from school_portal.core.errors import ServiceError, internal_error, raise_http_error
from school_portal.modules.announcements import repository, service
from school_portal.modules.announcements.models import AnnouncementAudience
from school_portal.modules.announcements.schemas import (
    AnnouncementCreate,
    AnnouncementItem,
    AnnouncementListResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _list_response(items) -> AnnouncementListResponse:
    return AnnouncementListResponse(
        items=[AnnouncementItem.model_validate(item) for item in items],
        total=len(items),
    )


@router.get("", response_model=AnnouncementListResponse, summary="Active Announcements")
async def list_active(
    audience: AnnouncementAudience | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
) -> AnnouncementListResponse:
    try:
        items = await repository.list_announcements(db, archived=False, audience=audience, limit=limit)
    except Exception as e:
        raise internal_error(e, "listing announcements") from e
    return _list_response(items)


@router.get("/archived", response_model=AnnouncementListResponse, summary="Archived Announcements")
async def list_archived(
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    admin: AuthenticatedIdentity = Depends(get_current_admin),
) -> AnnouncementListResponse:
    try:
        items = await repository.list_announcements(db, archived=True, limit=limit)
    except Exception as e:
        raise internal_error(e, "listing archived announcements") from e
    return _list_response(items)


@router.post(
    "",
    response_model=AnnouncementItem,
    status_code=status.HTTP_201_CREATED,
    summary="Publish Announcement",
)
async def publish(
    body: AnnouncementCreate,
    db: AsyncSession = Depends(get_db),
    admin: AuthenticatedIdentity = Depends(get_current_admin),
) -> AnnouncementItem:
    try:
        announcement = await service.publish(db, body, admin)
    except Exception as e:
        raise internal_error(e, "publishing announcement") from e
    return AnnouncementItem.model_validate(announcement)


@router.post("/{announcement_id}/archive", response_model=AnnouncementItem)
async def archive(
    announcement_id: str,
    db: AsyncSession = Depends(get_db),
    admin: AuthenticatedIdentity = Depends(get_current_admin),
) -> AnnouncementItem:
    try:
        announcement = await service.archive(db, announcement_id, admin)
    except ServiceError as e:
        raise_http_error(e)
    except Exception as e:
        raise internal_error(e, "archiving announcement") from e
    return AnnouncementItem.model_validate(announcement)


@router.post("/{announcement_id}/restore", response_model=AnnouncementItem)
async def restore(
    announcement_id: str,
    db: AsyncSession = Depends(get_db),
    admin: AuthenticatedIdentity = Depends(get_current_admin),
) -> AnnouncementItem:
    try:
        announcement = await service.restore(db, announcement_id, admin)
    except ServiceError as e:
        raise_http_error(e)
    except Exception as e:
        raise internal_error(e, "restoring announcement") from e
    return AnnouncementItem.model_validate(announcement)


@router.delete("/{announcement_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete(
    announcement_id: str,
    db: AsyncSession = Depends(get_db),
    admin: AuthenticatedIdentity = Depends(get_current_admin),
) -> Response:
    try:
        await service.delete(db, announcement_id, admin)
    except ServiceError as e:
        raise_http_error(e)
    except Exception as e:
        raise internal_error(e, "deleting announcement") from e
    return Response(status_code=status.HTTP_204_NO_CONTENT)
