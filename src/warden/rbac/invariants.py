"""Invariant enforcer: precondition checks run before RBAC mutations.

Learn: These rules protect the system from locking itself out:

1. At least one active admin must always hold the superadmin role.
   Deleting, deactivating, or demoting the last one is refused.
2. The superadmin role cannot be deleted, renamed, or emptied of
   permissions. No system role can be deleted.
3. Only a superadmin may modify/delete another superadmin, or create
   or modify system roles.
4. Nobody deletes their own account.
5. A role still assigned to admins, or a permission still assigned to
   roles, cannot be deleted.

Each check raises InvariantViolation with a human-readable reason. The
reasons are deliberately specific: they are not security sensitive and
the admin UI shows them verbatim.
"""

import uuid
from typing import Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from warden.db.models import Admin, Permission, Role, RolePermission
from warden.errors import InvariantViolation, bounded
from warden.rbac.catalog import SUPERADMIN_ROLE
from warden.rbac.resolver import PrincipalSnapshot, is_superadmin


def role_is_superadmin(role: Optional[Role]) -> bool:
    return role is not None and role.name == SUPERADMIN_ROLE and bool(role.is_system_role)


class InvariantEnforcer:
    """Checks that need the current persisted state to decide."""

    def __init__(self, db: AsyncSession, timeout: float = 5.0):
        self.db = db
        self.timeout = timeout

    async def count_active_superadmins(self, exclude_id: Optional[uuid.UUID] = None) -> int:
        q = (
            select(func.count(Admin.id))
            .join(Role, Admin.role_id == Role.id)
            .where(
                Role.name == SUPERADMIN_ROLE,
                Role.is_system_role.is_(True),
                Admin.is_active.is_(True),
            )
        )
        if exclude_id is not None:
            q = q.where(Admin.id != exclude_id)
        result = await bounded(self.db.execute(q), self.timeout, "superadmin count")
        return int(result.scalar_one())

    # ─── Principals ─────────────────────────────────────

    @staticmethod
    def ensure_not_self(actor: PrincipalSnapshot, target_id: uuid.UUID) -> None:
        if actor.principal_id == str(target_id):
            raise InvariantViolation("Cannot delete your own account")

    @staticmethod
    def ensure_can_touch_admin(actor: PrincipalSnapshot, target: Admin, action: str) -> None:
        """Non-superadmins may not modify or delete a superadmin (self-edits aside)."""
        if not role_is_superadmin(target.role):
            return
        if is_superadmin(actor):
            return
        if action == "update" and actor.principal_id == str(target.id):
            return
        raise InvariantViolation(f"Only superadmins can {action} other superadmins")

    async def ensure_superadmin_survives(self, target: Admin, change: str) -> None:
        """Refuse a change that would leave zero active superadmins.

        change is one of "delete", "deactivate", "demote".
        """
        if not role_is_superadmin(target.role) or not target.is_active:
            return
        remaining = await self.count_active_superadmins(exclude_id=target.id)
        if remaining == 0:
            reasons = {
                "delete": "Cannot delete the last superadmin",
                "deactivate": "Cannot deactivate the last superadmin",
                "demote": "Cannot remove the last superadmin",
            }
            raise InvariantViolation(reasons[change])

    # ─── Roles ──────────────────────────────────────────

    @staticmethod
    def ensure_can_create_role(actor: PrincipalSnapshot, is_system_role: bool) -> None:
        if is_system_role and not is_superadmin(actor):
            raise InvariantViolation("Only superadmin can create system roles")

    @staticmethod
    def ensure_can_modify_role(
        actor: PrincipalSnapshot,
        role: Role,
        new_name: Optional[str] = None,
        new_permissions: Optional[Sequence[Permission]] = None,
    ) -> None:
        if role.is_system_role and not is_superadmin(actor):
            raise InvariantViolation("System roles can only be modified by superadmin")
        if role_is_superadmin(role):
            if new_name is not None and new_name != SUPERADMIN_ROLE:
                raise InvariantViolation("The superadmin role name cannot be changed")
            if new_permissions is not None and len(new_permissions) == 0:
                raise InvariantViolation(
                    "Cannot remove all permissions from the superadmin role"
                )

    async def ensure_can_delete_role(self, role: Role) -> None:
        if role_is_superadmin(role):
            raise InvariantViolation("The superadmin role cannot be deleted")
        if role.is_system_role:
            raise InvariantViolation("System roles cannot be deleted")
        q = select(func.count(Admin.id)).where(Admin.role_id == role.id)
        result = await bounded(self.db.execute(q), self.timeout, "role usage count")
        assigned = int(result.scalar_one())
        if assigned > 0:
            raise InvariantViolation(
                f"Cannot delete role. It is assigned to {assigned} admin(s)"
            )

    # ─── Permissions ────────────────────────────────────

    async def ensure_can_delete_permission(self, permission: Permission) -> None:
        q = select(func.count(RolePermission.id)).where(
            RolePermission.permission_id == permission.id
        )
        result = await bounded(self.db.execute(q), self.timeout, "permission usage count")
        assigned = int(result.scalar_one())
        if assigned > 0:
            raise InvariantViolation(
                f"Cannot delete permission. It is assigned to {assigned} role(s)"
            )
