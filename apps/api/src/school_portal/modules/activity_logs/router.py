"""
Activity Logs Router

- GET /activity-logs - List admin and system actions (admin only)
"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from school_portal.core.auth import AuthenticatedIdentity, get_current_admin
from school_portal.core.database import get_db
from school_portal.core.errors import internal_error
from school_portal.modules.activity_logs import repository
from school_portal.modules.activity_logs.schemas import ActivityLogItem, ActivityLogListResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=ActivityLogListResponse, summary="List Activity Logs")
async def list_activity_logs(
    action_type: str | None = Query(None, description="Filter by action type"),
    target_id: str | None = Query(None, description="Filter by target record id"),
    performed_by: str | None = Query(None, description="Filter by actor uid or 'system'"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    admin: AuthenticatedIdentity = Depends(get_current_admin),
) -> ActivityLogListResponse:
    try:
        items, total = await repository.list_logs(
            db,
            action_type=action_type,
            target_id=target_id,
            performed_by=performed_by,
            limit=limit,
            offset=offset,
        )
    except Exception as e:
        raise internal_error(e, "listing activity logs") from e

    return ActivityLogListResponse(
        items=[ActivityLogItem.model_validate(item) for item in items],
        total=total,
        limit=limit,
        offset=offset,
    )
