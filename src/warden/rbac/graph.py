"""Permission graph: roles, permissions, and their assignment.

Learn: Service layer separates business logic from HTTP routing.
API routes call this service; it checks the invariants, writes, commits,
and then records an audit entry. Role and permission lookups always hit
the database (no cache), so the graph seen by the next request is the
graph that was just committed.
"""

import uuid
from dataclasses import dataclass
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from warden.audit.logger import ActivityLogger, ClientInfo
from warden.db.models import Permission, Role
from warden.errors import Conflict, NotFound, bounded, commit_or_conflict
from warden.rbac.invariants import InvariantEnforcer
from warden.rbac.resolver import PrincipalSnapshot

_ROLES_MODULE = "Admin/Roles"
_PERMISSIONS_MODULE = "Admin/Permissions"


@dataclass
class RoleChanges:
    name: Optional[str] = None
    description: Optional[str] = None
    permission_ids: Optional[list[uuid.UUID]] = None


@dataclass
class PermissionChanges:
    name: Optional[str] = None
    description: Optional[str] = None
    module: Optional[str] = None


def _role_values(role: Role) -> dict:
    return {
        "name": role.name,
        "description": role.description,
        "permissions": [str(p.id) for p in role.permissions],
    }


def _permission_values(permission: Permission) -> dict:
    return {
        "name": permission.name,
        "code": permission.code,
        "description": permission.description,
        "module": permission.module,
    }


class PermissionGraph:
    """Business logic for role and permission management."""

    def __init__(
        self,
        db: AsyncSession,
        audit: Optional[ActivityLogger] = None,
        timeout: float = 5.0,
    ):
        self.db = db
        self.audit = audit
        self.timeout = timeout
        self.invariants = InvariantEnforcer(db, timeout=timeout)

    # ─── Roles ──────────────────────────────────────────

    async def list_roles(self) -> list[Role]:
        result = await self._run(select(Role).order_by(Role.name), "role list")
        return list(result.scalars().all())

    async def get_role(self, role_id: uuid.UUID) -> Optional[Role]:
        return await bounded(self.db.get(Role, role_id), self.timeout, "role load")

    async def get_role_by_name(self, name: str) -> Optional[Role]:
        result = await self._run(select(Role).where(Role.name == name), "role lookup")
        return result.scalars().first()

    async def create_role(
        self,
        actor: PrincipalSnapshot,
        name: str,
        description: Optional[str] = None,
        permission_ids: Optional[Sequence[uuid.UUID]] = None,
        is_system_role: bool = False,
        client: Optional[ClientInfo] = None,
    ) -> Role:
        if await self.get_role_by_name(name):
            raise Conflict("A role with this name already exists")
        self.invariants.ensure_can_create_role(actor, is_system_role)

        role = Role(
            name=name,
            description=description,
            is_system_role=is_system_role,
            created_by_id=uuid.UUID(actor.principal_id),
            last_modified_by_id=uuid.UUID(actor.principal_id),
        )
        role.permissions = await self._permissions_by_ids(permission_ids or [])
        self.db.add(role)
        await self._commit("role create", conflict="A role with this name already exists")

        await self._audit(
            actor,
            action="create",
            entity_type="Role",
            entity_id=role.id,
            description=f"Created new role: {name}",
            new_values={**_role_values(role), "isSystemRole": is_system_role},
            module=_ROLES_MODULE,
            client=client,
        )
        return role

    async def update_role(
        self,
        actor: PrincipalSnapshot,
        role_id: uuid.UUID,
        changes: RoleChanges,
        client: Optional[ClientInfo] = None,
    ) -> Role:
        role = await self.get_role(role_id)
        if role is None:
            raise NotFound("Role not found")

        new_permissions = None
        if changes.permission_ids is not None:
            new_permissions = await self._permissions_by_ids(changes.permission_ids)
        self.invariants.ensure_can_modify_role(
            actor, role, new_name=changes.name, new_permissions=new_permissions
        )

        if changes.name and changes.name != role.name:
            if await self.get_role_by_name(changes.name):
                raise Conflict("A role with this name already exists")

        previous = _role_values(role)
        if changes.name:
            role.name = changes.name
        if changes.description is not None:
            role.description = changes.description
        if new_permissions is not None:
            role.permissions = new_permissions
        role.last_modified_by_id = uuid.UUID(actor.principal_id)
        await self._commit("role update", conflict="A role with this name already exists")

        await self._audit(
            actor,
            action="update",
            entity_type="Role",
            entity_id=role.id,
            description=f"Updated role: {role.name}",
            previous_values=previous,
            new_values=_role_values(role),
            module=_ROLES_MODULE,
            client=client,
        )
        return role

    async def delete_role(
        self,
        actor: PrincipalSnapshot,
        role_id: uuid.UUID,
        client: Optional[ClientInfo] = None,
    ) -> None:
        role = await self.get_role(role_id)
        if role is None:
            raise NotFound("Role not found")
        await self.invariants.ensure_can_delete_role(role)

        previous = {"id": str(role.id), **_role_values(role)}
        await self.db.delete(role)
        await self._commit("role delete")

        await self._audit(
            actor,
            action="delete",
            entity_type="Role",
            entity_id=role_id,
            description=f"Deleted role: {previous['name']}",
            previous_values=previous,
            module=_ROLES_MODULE,
            client=client,
        )

    # ─── Permissions ────────────────────────────────────

    async def list_permissions(self, module: Optional[str] = None) -> list[Permission]:
        q = select(Permission).order_by(Permission.module, Permission.code)
        if module:
            q = q.where(Permission.module == module)
        result = await self._run(q, "permission list")
        return list(result.scalars().all())

    async def list_modules(self) -> list[str]:
        q = select(Permission.module).distinct().order_by(Permission.module)
        result = await self._run(q, "module list")
        return list(result.scalars().all())

    async def get_permission(self, permission_id: uuid.UUID) -> Optional[Permission]:
        return await bounded(
            self.db.get(Permission, permission_id), self.timeout, "permission load"
        )

    async def create_permission(
        self,
        actor: PrincipalSnapshot,
        name: str,
        code: str,
        module: str,
        description: Optional[str] = None,
        client: Optional[ClientInfo] = None,
    ) -> Permission:
        existing = await self._run(
            select(Permission.id).where(Permission.code == code), "permission lookup"
        )
        if existing.first() is not None:
            raise Conflict("A permission with this code already exists")
        if await self._permission_name_taken(name):
            raise Conflict("A permission with this name already exists")

        permission = Permission(
            name=name,
            code=code,
            module=module,
            description=description,
            created_by_id=uuid.UUID(actor.principal_id),
            last_modified_by_id=uuid.UUID(actor.principal_id),
        )
        self.db.add(permission)
        await self._commit(
            "permission create", conflict="A permission with this code or name already exists"
        )

        await self._audit(
            actor,
            action="create",
            entity_type="Permission",
            entity_id=permission.id,
            description=f"Created new permission: {name} ({code})",
            new_values=_permission_values(permission),
            module=_PERMISSIONS_MODULE,
            client=client,
        )
        return permission

    async def update_permission(
        self,
        actor: PrincipalSnapshot,
        permission_id: uuid.UUID,
        changes: PermissionChanges,
        client: Optional[ClientInfo] = None,
    ) -> Permission:
        """Update display fields. The code is immutable and not accepted here."""
        permission = await self.get_permission(permission_id)
        if permission is None:
            raise NotFound("Permission not found")

        if changes.name and changes.name != permission.name:
            if await self._permission_name_taken(changes.name):
                raise Conflict("A permission with this name already exists")

        previous = _permission_values(permission)
        if changes.name:
            permission.name = changes.name
        if changes.description is not None:
            permission.description = changes.description
        if changes.module:
            permission.module = changes.module
        permission.last_modified_by_id = uuid.UUID(actor.principal_id)
        await self._commit(
            "permission update", conflict="A permission with this name already exists"
        )

        await self._audit(
            actor,
            action="update",
            entity_type="Permission",
            entity_id=permission.id,
            description=f"Updated permission: {permission.name} ({permission.code})",
            previous_values=previous,
            new_values=_permission_values(permission),
            module=_PERMISSIONS_MODULE,
            client=client,
        )
        return permission

    async def delete_permission(
        self,
        actor: PrincipalSnapshot,
        permission_id: uuid.UUID,
        client: Optional[ClientInfo] = None,
    ) -> None:
        permission = await self.get_permission(permission_id)
        if permission is None:
            raise NotFound("Permission not found")
        await self.invariants.ensure_can_delete_permission(permission)

        previous = {"id": str(permission.id), **_permission_values(permission)}
        await self.db.delete(permission)
        await self._commit("permission delete")

        await self._audit(
            actor,
            action="delete",
            entity_type="Permission",
            entity_id=permission_id,
            description=f"Deleted permission: {previous['name']} ({previous['code']})",
            previous_values=previous,
            module=_PERMISSIONS_MODULE,
            client=client,
        )

    # ─── Internals ──────────────────────────────────────

    async def _permissions_by_ids(self, ids: Sequence[uuid.UUID]) -> list[Permission]:
        if not ids:
            return []
        result = await self._run(
            select(Permission).where(Permission.id.in_(list(ids))), "permission lookup"
        )
        return list(result.scalars().all())

    async def _permission_name_taken(self, name: str) -> bool:
        result = await self._run(
            select(Permission.id).where(Permission.name == name), "permission lookup"
        )
        return result.first() is not None

    async def _run(self, statement, what: str):
        return await bounded(self.db.execute(statement), self.timeout, what)

    async def _commit(self, what: str, conflict: Optional[str] = None) -> None:
        if conflict is None:
            await bounded(self.db.commit(), self.timeout, what)
        else:
            await commit_or_conflict(self.db, self.timeout, what, conflict)

    async def _audit(self, actor: PrincipalSnapshot, **entry) -> None:
        if self.audit is not None:
            await self.audit.log(actor_id=actor.principal_id, actor_kind=actor.kind, **entry)
