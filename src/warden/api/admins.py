"""Admin management API routes.

Learn: Routes handle HTTP concerns and the coarse permission gate
(require_permission); AdminService enforces the finer rules that depend
on who the target is (superadmin protection, last-superadmin, self).
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from warden.audit.logger import ActivityLogger, ClientInfo, get_activity_logger
from warden.auth.dependencies import get_current_admin, require_permission
from warden.auth.gate import AuthenticatedPrincipal
from warden.config import settings
from warden.db.engine import get_db
from warden.errors import NotFound
from warden.rbac.catalog import ADMIN_DELETE, ADMIN_MANAGE, ADMIN_VIEW
from warden.schemas.admin import (
    AdminCreate,
    AdminPageRead,
    AdminRead,
    AdminUpdate,
    PasswordChange,
)
from warden.services.admin_service import AdminChanges, AdminService
from warden.sessions.registry import SessionRegistry, get_registry

router = APIRouter(prefix="/admin/admins")


def _svc(
    db: AsyncSession = Depends(get_db),
    registry: SessionRegistry = Depends(get_registry),
    audit: ActivityLogger = Depends(get_activity_logger),
) -> AdminService:
    return AdminService(db, registry, audit=audit, timeout=settings.store_timeout_seconds)


@router.get("", response_model=AdminPageRead)
async def list_admins(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = None,
    role_id: Optional[uuid.UUID] = Query(None, alias="roleId"),
    is_active: Optional[bool] = Query(None, alias="isActive"),
    _: AuthenticatedPrincipal = Depends(require_permission(ADMIN_VIEW)),
    svc: AdminService = Depends(_svc),
):
    result = await svc.list_admins(
        page=page, limit=limit, search=search, role_id=role_id, is_active=is_active
    )
    return AdminPageRead(
        items=[AdminRead.model_validate(a) for a in result.items],
        total=result.total,
        page=result.page,
        limit=result.limit,
        total_pages=result.total_pages,
    )


@router.get("/{admin_id}", response_model=AdminRead)
async def get_admin(
    admin_id: uuid.UUID,
    _: AuthenticatedPrincipal = Depends(require_permission(ADMIN_VIEW)),
    svc: AdminService = Depends(_svc),
):
    admin = await svc.get_admin(admin_id)
    if not admin:
        raise NotFound("Admin not found")
    return admin


@router.post("", response_model=AdminRead, status_code=201)
async def create_admin(
    body: AdminCreate,
    request: Request,
    current: AuthenticatedPrincipal = Depends(require_permission(ADMIN_MANAGE)),
    svc: AdminService = Depends(_svc),
):
    return await svc.create_admin(
        current.snapshot,
        first_name=body.first_name,
        last_name=body.last_name,
        email=body.email,
        password=body.password,
        role_id=body.role_id,
        is_active=body.is_active,
        client=ClientInfo.from_request(request),
    )


@router.put("/{admin_id}", response_model=AdminRead)
async def update_admin(
    admin_id: uuid.UUID,
    body: AdminUpdate,
    request: Request,
    current: AuthenticatedPrincipal = Depends(require_permission(ADMIN_MANAGE)),
    svc: AdminService = Depends(_svc),
):
    changes = AdminChanges(
        first_name=body.first_name,
        last_name=body.last_name,
        email=body.email,
        role_id=body.role_id,
        is_active=body.is_active,
    )
    return await svc.update_admin(
        current.snapshot, admin_id, changes, client=ClientInfo.from_request(request)
    )


@router.patch("/{admin_id}/password")
async def change_password(
    admin_id: uuid.UUID,
    body: PasswordChange,
    request: Request,
    current: AuthenticatedPrincipal = Depends(get_current_admin),
    svc: AdminService = Depends(_svc),
):
    """Any admin may change their own password; others need admin:manage."""
    await svc.change_password(
        current.snapshot,
        admin_id,
        new_password=body.new_password,
        current_password=body.current_password,
        client=ClientInfo.from_request(request),
    )
    return {"status": "success", "message": "Password updated successfully"}


@router.delete("/{admin_id}", status_code=204)
async def delete_admin(
    admin_id: uuid.UUID,
    request: Request,
    current: AuthenticatedPrincipal = Depends(require_permission(ADMIN_DELETE)),
    svc: AdminService = Depends(_svc),
):
    await svc.delete_admin(current.snapshot, admin_id, client=ClientInfo.from_request(request))
