"""Auth API: login, logout, registration, and "who am I" for both kinds.

Learn: Routes for establishing and ending sessions:
- POST /auth/register        → create a user, log them straight in
- POST /auth/login           → email/password (+ forceLogin) → token
- POST /auth/logout          → drop the user's session, expire the cookie
- GET  /auth/me              → current user
- POST /admin/auth/login     → same flow for administrators
- POST /admin/auth/logout
- GET  /admin/auth/me        → current admin with role and permissions

The token is returned in the body AND set as an httponly cookie. Clients
may send it back either way; the Bearer header wins.
"""

from fastapi import APIRouter, Depends, Request, Response

from warden.audit.logger import ActivityLogger, ClientInfo, get_activity_logger
from warden.auth.credentials import CredentialStore
from warden.auth.dependencies import (
    get_credentials,
    get_current_admin,
    get_current_user,
    get_current_user_optional,
    get_issuer,
)
from warden.auth.gate import COOKIE_NAMES, AuthenticatedPrincipal
from warden.auth.jwt import PrincipalKind, TokenIssuer
from warden.config import settings
from warden.db.models import Admin
from warden.middleware.security import served_over_tls
from warden.rbac.resolver import snapshot_principal
from warden.schemas.auth import (
    AdminMe,
    AdminSession,
    LoginRequest,
    RegisterRequest,
    RoleBrief,
    UserRead,
    UserSession,
)
from warden.services.auth_service import AuthService
from warden.sessions.registry import SessionRegistry, get_registry

router = APIRouter(prefix="/auth")
admin_router = APIRouter(prefix="/admin/auth")


def _svc(
    credentials: CredentialStore = Depends(get_credentials),
    registry: SessionRegistry = Depends(get_registry),
    issuer: TokenIssuer = Depends(get_issuer),
    audit: ActivityLogger = Depends(get_activity_logger),
) -> AuthService:
    return AuthService(
        credentials,
        registry,
        issuer,
        audit=audit,
        session_ttl_seconds=settings.session_ttl_seconds,
    )


# ─── Cookies ────────────────────────────────────────────


def _set_token_cookie(
    response: Response, request: Request, kind: PrincipalKind, token: str
) -> None:
    response.set_cookie(
        COOKIE_NAMES[kind],
        token,
        max_age=settings.cookie_max_age_days * 24 * 60 * 60,
        httponly=True,
        secure=served_over_tls(request),
        samesite="lax",
    )


def _expire_token_cookie(response: Response, kind: PrincipalKind) -> None:
    response.set_cookie(COOKIE_NAMES[kind], "loggedout", max_age=10, httponly=True)


def _admin_me(admin: Admin) -> AdminMe:
    role = snapshot_principal(admin, PrincipalKind.ADMIN).role
    return AdminMe(
        id=admin.id,
        first_name=admin.first_name,
        last_name=admin.last_name,
        email=admin.email,
        is_active=admin.is_active,
        role=RoleBrief(
            id=role.id,
            name=role.name,
            is_system_role=role.is_system_role,
            permissions=sorted(role.permissions),
        ) if role else None,
    )


# ═══════════════════════════════════════════════════════════
# End users
# ═══════════════════════════════════════════════════════════


@router.post("/register", response_model=UserSession, status_code=201)
async def register(
    body: RegisterRequest,
    request: Request,
    response: Response,
    svc: AuthService = Depends(_svc),
):
    """Create a user account and open its first session."""
    result = await svc.register_user(
        first_name=body.first_name,
        last_name=body.last_name,
        email=body.email,
        password=body.password,
        client=ClientInfo.from_request(request),
    )
    _set_token_cookie(response, request, PrincipalKind.USER, result.token)
    return UserSession(token=result.token, data=UserRead.model_validate(result.principal))


@router.post("/login", response_model=UserSession)
async def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    svc: AuthService = Depends(_svc),
):
    result = await svc.login(
        PrincipalKind.USER,
        body.email,
        body.password,
        force_login=body.force_login,
        client=ClientInfo.from_request(request),
    )
    _set_token_cookie(response, request, PrincipalKind.USER, result.token)
    return UserSession(
        token=result.token,
        forced=result.forced,
        data=UserRead.model_validate(result.principal),
    )


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    current: AuthenticatedPrincipal = Depends(get_current_user_optional),
    svc: AuthService = Depends(_svc),
):
    """Always succeeds. Drops the session only if the caller still owns it."""
    if current is not None:
        await svc.logout(PrincipalKind.USER, current.id, client=ClientInfo.from_request(request))
    _expire_token_cookie(response, PrincipalKind.USER)
    return {"status": "success", "message": "Logged out successfully"}


@router.get("/me", response_model=UserRead)
async def get_me(current: AuthenticatedPrincipal = Depends(get_current_user)):
    return current.principal


# ═══════════════════════════════════════════════════════════
# Administrators
# ═══════════════════════════════════════════════════════════


@admin_router.post("/login", response_model=AdminSession)
async def admin_login(
    body: LoginRequest,
    request: Request,
    response: Response,
    svc: AuthService = Depends(_svc),
):
    result = await svc.login(
        PrincipalKind.ADMIN,
        body.email,
        body.password,
        force_login=body.force_login,
        client=ClientInfo.from_request(request),
    )
    _set_token_cookie(response, request, PrincipalKind.ADMIN, result.token)
    return AdminSession(
        token=result.token,
        forced=result.forced,
        data=_admin_me(result.principal),
    )


@admin_router.post("/logout")
async def admin_logout(
    request: Request,
    response: Response,
    current: AuthenticatedPrincipal = Depends(get_current_admin),
    svc: AuthService = Depends(_svc),
):
    await svc.logout(PrincipalKind.ADMIN, current.id, client=ClientInfo.from_request(request))
    _expire_token_cookie(response, PrincipalKind.ADMIN)
    return {"status": "success", "message": "Logged out successfully"}


@admin_router.get("/me", response_model=AdminMe)
async def get_admin_me(current: AuthenticatedPrincipal = Depends(get_current_admin)):
    return _admin_me(current.principal)
