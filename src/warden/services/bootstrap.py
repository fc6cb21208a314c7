"""First-run provisioning: permission catalog, superadmin role, first admin.

Learn: The invariants guarantee the system never loses its last
superadmin, but something has to create the first one. bootstrap() is
idempotent: running it again only fills in whatever is missing, and it
never changes the password of an admin that already exists.
"""

from dataclasses import dataclass, field
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from warden.auth.credentials import normalize_email
from warden.auth.password import hash_password
from warden.db.models import Admin, Permission, Role
from warden.rbac.catalog import DEFAULT_PERMISSIONS, SUPERADMIN_ROLE

logger = structlog.get_logger()


@dataclass
class BootstrapResult:
    permissions_created: list[str] = field(default_factory=list)
    role_created: bool = False
    admin_created: bool = False
    admin_email: Optional[str] = None


async def bootstrap(
    db: AsyncSession,
    email: str,
    password: str,
    first_name: str = "Super",
    last_name: str = "Admin",
) -> BootstrapResult:
    result = BootstrapResult(admin_email=normalize_email(email))

    existing = await db.execute(select(Permission))
    by_code = {p.code: p for p in existing.scalars().all()}
    for code, name, module in DEFAULT_PERMISSIONS:
        if code not in by_code:
            permission = Permission(code=code, name=name, module=module)
            db.add(permission)
            by_code[code] = permission
            result.permissions_created.append(code)

    role = (
        await db.execute(select(Role).where(Role.name == SUPERADMIN_ROLE))
    ).scalars().first()
    if role is None:
        role = Role(
            name=SUPERADMIN_ROLE,
            description="Full access to every admin feature",
            is_system_role=True,
        )
        role.permissions = list(by_code.values())
        db.add(role)
        result.role_created = True
    else:
        held = {p.code for p in role.permissions}
        missing = [p for code, p in by_code.items() if code not in held]
        if missing:
            role.permissions = list(role.permissions) + missing

    admin = (
        await db.execute(select(Admin).where(Admin.email == result.admin_email))
    ).scalars().first()
    if admin is None:
        db.add(Admin(
            first_name=first_name,
            last_name=last_name,
            email=result.admin_email,
            password_hash=hash_password(password),
            role=role,
            is_active=True,
        ))
        result.admin_created = True

    await db.commit()
    logger.info(
        "bootstrap.done",
        permissions_created=len(result.permissions_created),
        role_created=result.role_created,
        admin_created=result.admin_created,
    )
    return result
