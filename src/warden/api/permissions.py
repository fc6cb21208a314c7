"""Permission API routes.

Learn: Anyone who can see roles can see the permission catalog (they
need it to build a role). Changing the catalog is superadmin-only.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from warden.audit.logger import ActivityLogger, ClientInfo, get_activity_logger
from warden.auth.dependencies import require_permission, require_superadmin
from warden.auth.gate import AuthenticatedPrincipal
from warden.config import settings
from warden.db.engine import get_db
from warden.errors import NotFound
from warden.rbac.catalog import PERMISSION_VIEW, ROLE_VIEW
from warden.rbac.graph import PermissionChanges, PermissionGraph
from warden.schemas.rbac import PermissionCreate, PermissionRead, PermissionUpdate

router = APIRouter(prefix="/admin/permissions")

_can_view = require_permission(PERMISSION_VIEW, ROLE_VIEW)


def _graph(
    db: AsyncSession = Depends(get_db),
    audit: ActivityLogger = Depends(get_activity_logger),
) -> PermissionGraph:
    return PermissionGraph(db, audit=audit, timeout=settings.store_timeout_seconds)


@router.get("", response_model=list[PermissionRead])
async def list_permissions(
    module: Optional[str] = None,
    _: AuthenticatedPrincipal = Depends(_can_view),
    graph: PermissionGraph = Depends(_graph),
):
    return await graph.list_permissions(module=module)


@router.get("/modules", response_model=list[str])
async def list_modules(
    _: AuthenticatedPrincipal = Depends(_can_view),
    graph: PermissionGraph = Depends(_graph),
):
    return await graph.list_modules()


@router.get("/{permission_id}", response_model=PermissionRead)
async def get_permission(
    permission_id: uuid.UUID,
    _: AuthenticatedPrincipal = Depends(_can_view),
    graph: PermissionGraph = Depends(_graph),
):
    permission = await graph.get_permission(permission_id)
    if not permission:
        raise NotFound("Permission not found")
    return permission


@router.post("", response_model=PermissionRead, status_code=201)
async def create_permission(
    body: PermissionCreate,
    request: Request,
    current: AuthenticatedPrincipal = Depends(require_superadmin),
    graph: PermissionGraph = Depends(_graph),
):
    return await graph.create_permission(
        current.snapshot,
        name=body.name,
        code=body.code,
        module=body.module,
        description=body.description,
        client=ClientInfo.from_request(request),
    )


@router.patch("/{permission_id}", response_model=PermissionRead)
async def update_permission(
    permission_id: uuid.UUID,
    body: PermissionUpdate,
    request: Request,
    current: AuthenticatedPrincipal = Depends(require_superadmin),
    graph: PermissionGraph = Depends(_graph),
):
    changes = PermissionChanges(
        name=body.name, description=body.description, module=body.module
    )
    return await graph.update_permission(
        current.snapshot, permission_id, changes, client=ClientInfo.from_request(request)
    )


@router.delete("/{permission_id}", status_code=204)
async def delete_permission(
    permission_id: uuid.UUID,
    request: Request,
    current: AuthenticatedPrincipal = Depends(require_superadmin),
    graph: PermissionGraph = Depends(_graph),
):
    await graph.delete_permission(
        current.snapshot, permission_id, client=ClientInfo.from_request(request)
    )
