"""Admin service: administrator accounts and their roles.

Learn: Every mutation runs the invariant checks first, then writes,
commits, and audits. Two side effects worth knowing about:

- Deactivating an admin or changing their password deletes their live
  session record, so existing tokens stop working on the next request.
- Deleting an admin removes the row; the audit entries that mention the
  admin are kept (activity_logs has no foreign keys).
"""

import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from warden.audit.logger import ActivityLogger, ClientInfo
from warden.auth.credentials import CredentialStore, normalize_email
from warden.auth.jwt import PrincipalKind
from warden.auth.password import hash_password, verify_password
from warden.db.models import Admin, Role
from warden.errors import (
    Conflict,
    InvalidCredentials,
    NotFound,
    PermissionDenied,
    WardenError,
    bounded,
    commit_or_conflict,
)
from warden.rbac.catalog import ADMIN_MANAGE
from warden.rbac.invariants import InvariantEnforcer, role_is_superadmin
from warden.rbac.resolver import PrincipalSnapshot, has_permission
from warden.sessions.registry import SessionRegistry

_MODULE = "Admin/Management"


@dataclass
class AdminChanges:
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    role_id: Optional[uuid.UUID] = None
    is_active: Optional[bool] = None


@dataclass
class AdminPage:
    items: list[Admin]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.limit else 0


def _admin_values(admin: Admin) -> dict:
    return {
        "firstName": admin.first_name,
        "lastName": admin.last_name,
        "email": admin.email,
        "roleId": str(admin.role_id),
        "isActive": admin.is_active,
    }


class AdminService:
    """Business logic for administrator management."""

    def __init__(
        self,
        db: AsyncSession,
        registry: SessionRegistry,
        audit: Optional[ActivityLogger] = None,
        timeout: float = 5.0,
    ):
        self.db = db
        self.registry = registry
        self.audit = audit
        self.timeout = timeout
        self.credentials = CredentialStore(db, timeout=timeout)
        self.invariants = InvariantEnforcer(db, timeout=timeout)

    # ─── Reads ──────────────────────────────────────────

    async def list_admins(
        self,
        page: int = 1,
        limit: int = 10,
        search: Optional[str] = None,
        role_id: Optional[uuid.UUID] = None,
        is_active: Optional[bool] = None,
    ) -> AdminPage:
        filters = []
        if search:
            pattern = f"%{search.lower()}%"
            filters.append(
                or_(
                    func.lower(Admin.first_name).like(pattern),
                    func.lower(Admin.last_name).like(pattern),
                    func.lower(Admin.email).like(pattern),
                )
            )
        if role_id is not None:
            filters.append(Admin.role_id == role_id)
        if is_active is not None:
            filters.append(Admin.is_active.is_(is_active))

        count_q = select(func.count(Admin.id)).where(*filters)
        total = (await self._run(count_q, "admin count")).scalar_one()

        q = (
            select(Admin)
            .where(*filters)
            .order_by(Admin.created_at.desc())
            .limit(limit)
            .offset((page - 1) * limit)
        )
        result = await self._run(q, "admin list")
        return AdminPage(items=list(result.scalars().all()), total=int(total), page=page, limit=limit)

    async def get_admin(self, admin_id: uuid.UUID) -> Optional[Admin]:
        return await bounded(self.db.get(Admin, admin_id), self.timeout, "admin load")

    # ─── Create ─────────────────────────────────────────

    async def create_admin(
        self,
        actor: PrincipalSnapshot,
        first_name: str,
        last_name: str,
        email: str,
        password: str,
        role_id: uuid.UUID,
        is_active: bool = True,
        client: Optional[ClientInfo] = None,
    ) -> Admin:
        if await self.credentials.email_taken(PrincipalKind.ADMIN, email):
            raise Conflict("Email is already in use")
        role = await self._role(role_id)
        if role_is_superadmin(role) and not _actor_is_superadmin(actor):
            raise PermissionDenied("Only superadmins can create superadmins")

        admin = Admin(
            first_name=first_name,
            last_name=last_name,
            email=normalize_email(email),
            password_hash=hash_password(password),
            role_id=role.id,
            is_active=is_active,
            created_by_id=uuid.UUID(actor.principal_id),
            last_modified_by_id=uuid.UUID(actor.principal_id),
        )
        admin.role = role
        self.db.add(admin)
        await self._commit("admin create", conflict="Email is already in use")

        await self._audit(
            actor,
            action="create",
            entity_id=admin.id,
            description=f"Admin created a new admin account for {first_name} {last_name}",
            new_values=_admin_values(admin),
            client=client,
        )
        return admin

    # ─── Update ─────────────────────────────────────────

    async def update_admin(
        self,
        actor: PrincipalSnapshot,
        admin_id: uuid.UUID,
        changes: AdminChanges,
        client: Optional[ClientInfo] = None,
    ) -> Admin:
        admin = await self._existing(admin_id)
        self.invariants.ensure_can_touch_admin(actor, admin, "update")
        previous = _admin_values(admin)

        if changes.email and normalize_email(changes.email) != admin.email:
            if await self.credentials.email_taken(
                PrincipalKind.ADMIN, changes.email, exclude_id=admin.id
            ):
                raise Conflict("Email is already in use")

        new_role = None
        if changes.role_id is not None and changes.role_id != admin.role_id:
            new_role = await self._role(changes.role_id)
            if role_is_superadmin(admin.role) and not role_is_superadmin(new_role):
                await self.invariants.ensure_superadmin_survives(admin, "demote")
            if role_is_superadmin(new_role) and not _actor_is_superadmin(actor):
                raise PermissionDenied("Only superadmins can grant the superadmin role")

        deactivating = changes.is_active is False and admin.is_active
        if deactivating:
            await self.invariants.ensure_superadmin_survives(admin, "deactivate")

        if changes.first_name:
            admin.first_name = changes.first_name
        if changes.last_name:
            admin.last_name = changes.last_name
        if changes.email:
            admin.email = normalize_email(changes.email)
        if new_role is not None:
            admin.role_id = new_role.id
            admin.role = new_role
        if changes.is_active is not None:
            admin.is_active = changes.is_active
        admin.last_modified_by_id = uuid.UUID(actor.principal_id)
        await self._commit("admin update", conflict="Email is already in use")

        if deactivating:
            await self.registry.delete(PrincipalKind.ADMIN, str(admin.id))

        await self._audit(
            actor,
            action="update",
            entity_id=admin.id,
            description=f"Admin updated admin account for {admin.first_name} {admin.last_name}",
            previous_values=previous,
            new_values=_admin_values(admin),
            client=client,
        )
        return admin

    async def change_password(
        self,
        actor: PrincipalSnapshot,
        admin_id: uuid.UUID,
        new_password: str,
        current_password: Optional[str] = None,
        client: Optional[ClientInfo] = None,
    ) -> None:
        """Self-service needs the current password; others need admin:manage."""
        admin = await self._existing(admin_id)

        if actor.principal_id == str(admin.id):
            if not current_password:
                raise WardenError("Current password is required")
            if not verify_password(current_password, admin.password_hash):
                raise InvalidCredentials("Current password is incorrect")
        else:
            if not has_permission(actor, ADMIN_MANAGE):
                raise PermissionDenied(
                    "You do not have permission to update this admin's password"
                )
            self.invariants.ensure_can_touch_admin(actor, admin, "update")

        admin.password_hash = hash_password(new_password)
        admin.last_modified_by_id = uuid.UUID(actor.principal_id)
        await self._commit("admin password update")

        if actor.principal_id != str(admin.id):
            await self.registry.delete(PrincipalKind.ADMIN, str(admin.id))

        await self._audit(
            actor,
            action="update",
            entity_id=admin.id,
            description=f"Admin updated password for {admin.first_name} {admin.last_name}",
            client=client,
        )

    # ─── Delete ─────────────────────────────────────────

    async def delete_admin(
        self,
        actor: PrincipalSnapshot,
        admin_id: uuid.UUID,
        client: Optional[ClientInfo] = None,
    ) -> None:
        self.invariants.ensure_not_self(actor, admin_id)
        admin = await self._existing(admin_id)
        self.invariants.ensure_can_touch_admin(actor, admin, "delete")
        await self.invariants.ensure_superadmin_survives(admin, "delete")

        previous = _admin_values(admin)
        name = f"{admin.first_name} {admin.last_name}"
        await self.db.delete(admin)
        await self._commit("admin delete")
        await self.registry.delete(PrincipalKind.ADMIN, str(admin_id))

        await self._audit(
            actor,
            action="delete",
            entity_id=admin_id,
            description=f"Admin deleted admin account for {name}",
            previous_values=previous,
            client=client,
        )

    # ─── Internals ──────────────────────────────────────

    async def _existing(self, admin_id: uuid.UUID) -> Admin:
        admin = await self.get_admin(admin_id)
        if admin is None:
            raise NotFound("Admin not found")
        return admin

    async def _role(self, role_id: uuid.UUID) -> Role:
        role = await bounded(self.db.get(Role, role_id), self.timeout, "role load")
        if role is None:
            raise WardenError("Invalid role")
        return role

    async def _run(self, statement, what: str):
        return await bounded(self.db.execute(statement), self.timeout, what)

    async def _commit(self, what: str, conflict: Optional[str] = None) -> None:
        if conflict is None:
            await bounded(self.db.commit(), self.timeout, what)
        else:
            await commit_or_conflict(self.db, self.timeout, what, conflict)

    async def _audit(self, actor: PrincipalSnapshot, **entry) -> None:
        if self.audit is not None:
            await self.audit.log(
                actor_id=actor.principal_id,
                actor_kind=actor.kind,
                entity_type="Admin",
                module=_MODULE,
                **entry,
            )


def _actor_is_superadmin(actor: PrincipalSnapshot) -> bool:
    return actor.role is not None and actor.role.is_superadmin
