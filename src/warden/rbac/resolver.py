"""Permission resolution over an immutable principal snapshot.

Learn: Permission checks are pure functions of a PrincipalSnapshot taken
once at the start of a request (by the authentication gate). Nothing
here touches the database, so a check can never be stale *within* a
request and never re-queries storage behind the caller's back. Role or
permission changes made by other requests are picked up by the next
request's snapshot.

The superadmin role bypasses every check, regardless of which
permissions are actually assigned to it.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

from warden.auth.jwt import PrincipalKind
from warden.rbac.catalog import SUPERADMIN_ROLE


@dataclass(frozen=True)
class RoleSnapshot:
    id: str
    name: str
    is_system_role: bool
    permissions: frozenset[str]

    @property
    def is_superadmin(self) -> bool:
        return self.name == SUPERADMIN_ROLE and self.is_system_role


@dataclass(frozen=True)
class PrincipalSnapshot:
    principal_id: str
    kind: PrincipalKind
    email: str
    is_active: bool = True
    role: Optional[RoleSnapshot] = None


def snapshot_role(role) -> Optional[RoleSnapshot]:
    """Freeze an ORM Role (with permissions loaded) into a RoleSnapshot."""
    if role is None:
        return None
    return RoleSnapshot(
        id=str(role.id),
        name=role.name,
        is_system_role=bool(role.is_system_role),
        permissions=frozenset(p.code for p in role.permissions),
    )


def snapshot_principal(principal, kind: PrincipalKind) -> PrincipalSnapshot:
    """Freeze an ORM User/Admin. Admin roles must already be loaded."""
    role = getattr(principal, "role", None) if kind == PrincipalKind.ADMIN else None
    return PrincipalSnapshot(
        principal_id=str(principal.id),
        kind=kind,
        email=principal.email,
        is_active=bool(principal.is_active),
        role=snapshot_role(role),
    )


def is_superadmin(principal: PrincipalSnapshot) -> bool:
    return principal.role is not None and principal.role.is_superadmin


def has_permission(principal: PrincipalSnapshot, code: str) -> bool:
    if principal.role is None:
        return False
    if principal.role.is_superadmin:
        return True
    return code in principal.role.permissions


def has_any(principal: PrincipalSnapshot, codes: Iterable[str]) -> bool:
    """OR over the codes, short-circuiting. Superadmin checked once."""
    if is_superadmin(principal):
        return True
    if principal.role is None:
        return False
    return any(code in principal.role.permissions for code in codes)


def has_all(principal: PrincipalSnapshot, codes: Iterable[str]) -> bool:
    """AND over the codes, short-circuiting. Superadmin checked once."""
    if is_superadmin(principal):
        return True
    if principal.role is None:
        return False
    return all(code in principal.role.permissions for code in codes)
