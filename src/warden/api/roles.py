"""Role API routes."""

import uuid

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from warden.audit.logger import ActivityLogger, ClientInfo, get_activity_logger
from warden.auth.dependencies import require_all_permissions, require_permission
from warden.auth.gate import AuthenticatedPrincipal
from warden.config import settings
from warden.db.engine import get_db
from warden.errors import NotFound
from warden.rbac.catalog import ROLE_DELETE, ROLE_MANAGE, ROLE_VIEW
from warden.rbac.graph import PermissionGraph, RoleChanges
from warden.schemas.rbac import RoleCreate, RoleRead, RoleUpdate

router = APIRouter(prefix="/admin/roles")


def _graph(
    db: AsyncSession = Depends(get_db),
    audit: ActivityLogger = Depends(get_activity_logger),
) -> PermissionGraph:
    return PermissionGraph(db, audit=audit, timeout=settings.store_timeout_seconds)


@router.get("", response_model=list[RoleRead])
async def list_roles(
    _: AuthenticatedPrincipal = Depends(require_permission(ROLE_VIEW)),
    graph: PermissionGraph = Depends(_graph),
):
    return await graph.list_roles()


@router.get("/{role_id}", response_model=RoleRead)
async def get_role(
    role_id: uuid.UUID,
    _: AuthenticatedPrincipal = Depends(require_permission(ROLE_VIEW)),
    graph: PermissionGraph = Depends(_graph),
):
    role = await graph.get_role(role_id)
    if not role:
        raise NotFound("Role not found")
    return role


@router.post("", response_model=RoleRead, status_code=201)
async def create_role(
    body: RoleCreate,
    request: Request,
    current: AuthenticatedPrincipal = Depends(require_permission(ROLE_MANAGE)),
    graph: PermissionGraph = Depends(_graph),
):
    return await graph.create_role(
        current.snapshot,
        name=body.name,
        description=body.description,
        permission_ids=body.permission_ids,
        is_system_role=body.is_system_role,
        client=ClientInfo.from_request(request),
    )


@router.patch("/{role_id}", response_model=RoleRead)
async def update_role(
    role_id: uuid.UUID,
    body: RoleUpdate,
    request: Request,
    current: AuthenticatedPrincipal = Depends(require_permission(ROLE_MANAGE)),
    graph: PermissionGraph = Depends(_graph),
):
    changes = RoleChanges(
        name=body.name,
        description=body.description,
        permission_ids=body.permission_ids,
    )
    return await graph.update_role(
        current.snapshot, role_id, changes, client=ClientInfo.from_request(request)
    )


@router.delete("/{role_id}", status_code=204)
async def delete_role(
    role_id: uuid.UUID,
    request: Request,
    current: AuthenticatedPrincipal = Depends(require_all_permissions(ROLE_MANAGE, ROLE_DELETE)),
    graph: PermissionGraph = Depends(_graph),
):
    await graph.delete_role(current.snapshot, role_id, client=ClientInfo.from_request(request))
