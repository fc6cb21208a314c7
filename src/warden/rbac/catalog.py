"""Permission code constants and the default catalog.

Learn: Centralizing permission codes as constants prevents typos and
makes it easy to discover every capability the API checks. Codes have
the form "<module>:<verb>" and are never renamed once created.
"""

SUPERADMIN_ROLE = "superadmin"

# ─── Admin management ────────────────────────────────────

ADMIN_VIEW = "admin:view"
ADMIN_MANAGE = "admin:manage"
ADMIN_DELETE = "admin:delete"

# ─── Roles ───────────────────────────────────────────────

ROLE_VIEW = "role:view"
ROLE_MANAGE = "role:manage"
ROLE_DELETE = "role:delete"

# ─── Permissions ─────────────────────────────────────────

# Reading only; writing the catalog is reserved for superadmins
PERMISSION_VIEW = "permission:view"

# ─── Audit ───────────────────────────────────────────────

AUDIT_VIEW = "audit:view"


# (code, display name, module) seeded by `warden bootstrap`
DEFAULT_PERMISSIONS: list[tuple[str, str, str]] = [
    (ADMIN_VIEW, "View admins", "Admin"),
    (ADMIN_MANAGE, "Manage admins", "Admin"),
    (ADMIN_DELETE, "Delete admins", "Admin"),
    (ROLE_VIEW, "View roles", "Roles"),
    (ROLE_MANAGE, "Manage roles", "Roles"),
    (ROLE_DELETE, "Delete roles", "Roles"),
    (PERMISSION_VIEW, "View permissions", "Permissions"),
    (AUDIT_VIEW, "View audit log", "Audit"),
]
