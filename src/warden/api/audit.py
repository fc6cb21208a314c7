"""Audit trail API routes (read-only)."""

import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from warden.audit.query import ActivityLogFilters, ActivityLogQuery
from warden.auth.dependencies import require_permission
from warden.config import settings
from warden.db.engine import get_db
from warden.rbac.catalog import AUDIT_VIEW
from warden.schemas.audit import ActivityLogPage, ActivityLogRead

router = APIRouter(
    prefix="/admin/audit",
    dependencies=[Depends(require_permission(AUDIT_VIEW))],
)


def _query(db: AsyncSession = Depends(get_db)) -> ActivityLogQuery:
    return ActivityLogQuery(db, timeout=settings.store_timeout_seconds)


@router.get("", response_model=ActivityLogPage)
async def list_activity(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    entity_type: Optional[str] = Query(None, alias="entityType"),
    action: Optional[str] = None,
    module: Optional[str] = None,
    user_id: Optional[uuid.UUID] = Query(None, alias="userId"),
    admin_id: Optional[uuid.UUID] = Query(None, alias="adminId"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    search: Optional[str] = None,
    query: ActivityLogQuery = Depends(_query),
):
    filters = ActivityLogFilters(
        entity_type=entity_type,
        action=action,
        module=module,
        user_id=user_id,
        admin_id=admin_id,
        start=start_date,
        end=end_date,
        search=search,
    )
    items, total = await query.fetch_page(filters, page=page, limit=limit)
    return ActivityLogPage(
        items=[ActivityLogRead.model_validate(i) for i in items],
        total=total,
        page=page,
        limit=limit,
        total_pages=(total + limit - 1) // limit,
    )


@router.get("/entity-types", response_model=list[str])
async def list_entity_types(query: ActivityLogQuery = Depends(_query)):
    return await query.entity_types()


@router.get("/actions", response_model=list[str])
async def list_actions(query: ActivityLogQuery = Depends(_query)):
    return await query.actions()


@router.get("/modules", response_model=list[str])
async def list_modules(query: ActivityLogQuery = Depends(_query)):
    return await query.modules()
