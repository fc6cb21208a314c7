"""API route aggregation.

All routers registered here get mounted in main.py.

Learn: Authentication is NOT applied at the include_router level here.
Each admin route declares its own permission dependency, because the
required permission differs per verb (view vs manage vs delete).
Health and login/register routes are open.
"""

from fastapi import APIRouter

from warden.api.admins import router as admins_router
from warden.api.audit import router as audit_router
from warden.api.auth import admin_router as admin_auth_router
from warden.api.auth import router as auth_router
from warden.api.health import router as health_router
from warden.api.permissions import router as permissions_router
from warden.api.roles import router as roles_router

api_router = APIRouter(prefix="/api/v1")

# Open routes (login/register open; /me and logout check their own auth)
api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router, tags=["auth"])
api_router.include_router(admin_auth_router, tags=["admin-auth"])

# Admin console, permission-checked per route
api_router.include_router(admins_router, tags=["admins"])
api_router.include_router(roles_router, tags=["roles"])
api_router.include_router(permissions_router, tags=["permissions"])
api_router.include_router(audit_router, tags=["audit"])
