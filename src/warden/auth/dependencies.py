"""FastAPI auth dependencies.

Learn: These are used as Depends() in route handlers to authenticate the
request and, for admin routes, to check permissions against the
principal snapshot the gate produced.

    get_current_user            → token kind "user",  cookie "token"
    get_current_user_optional   → same, but None instead of 401
    get_current_admin           → token kind "admin", cookie "admin_token"
    require_permission(*codes)  → admin holding ANY of the codes
    require_all_permissions(..) → admin holding ALL of the codes
    require_superadmin          → admin with the superadmin role

All per-request dependencies share the request's DB session (FastAPI
caches Depends(get_db) within one request), so the gate and the service
that runs after it see the same rows.
"""

from datetime import timedelta
from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from warden.auth.credentials import CredentialStore
from warden.auth.gate import AuthenticatedPrincipal, AuthenticationGate, extract_token
from warden.auth.jwt import PrincipalKind, TokenIssuer
from warden.auth.lockout import LockoutPolicy
from warden.config import settings
from warden.db.engine import get_db
from warden.errors import PermissionDenied, SessionExpired, Unauthenticated
from warden.rbac.resolver import has_all, has_any, is_superadmin
from warden.sessions.registry import SessionRegistry, get_registry


def get_issuer(request: Request) -> TokenIssuer:
    return request.app.state.issuer


def get_credentials(db: AsyncSession = Depends(get_db)) -> CredentialStore:
    policy = LockoutPolicy(
        max_attempts=settings.max_login_attempts,
        lock_duration=timedelta(minutes=settings.lockout_minutes),
    )
    return CredentialStore(db, policy=policy, timeout=settings.store_timeout_seconds)


def _authenticator(kind: PrincipalKind):
    async def authenticate(
        request: Request,
        authorization: Optional[str] = Header(None),
        issuer: TokenIssuer = Depends(get_issuer),
        credentials: CredentialStore = Depends(get_credentials),
        registry: SessionRegistry = Depends(get_registry),
    ) -> AuthenticatedPrincipal:
        token = extract_token(kind, authorization, request.cookies)
        gate = AuthenticationGate(issuer, credentials, registry)
        current = await gate.authenticate(kind, token)
        request.state.principal = current
        return current

    authenticate.__name__ = f"get_current_{kind.value}"
    return authenticate


get_current_user = _authenticator(PrincipalKind.USER)
get_current_admin = _authenticator(PrincipalKind.ADMIN)


# ─── Authorization ──────────────────────────────────────


def require_permission(*codes: str):
    """Admin must hold at least one of the codes (superadmin always passes)."""

    async def check(
        current: AuthenticatedPrincipal = Depends(get_current_admin),
    ) -> AuthenticatedPrincipal:
        if not has_any(current.snapshot, codes):
            raise PermissionDenied()
        return current

    return check


def require_all_permissions(*codes: str):
    """Admin must hold every one of the codes (superadmin always passes)."""

    async def check(
        current: AuthenticatedPrincipal = Depends(get_current_admin),
    ) -> AuthenticatedPrincipal:
        if not has_all(current.snapshot, codes):
            raise PermissionDenied()
        return current

    return check


async def require_superadmin(
    current: AuthenticatedPrincipal = Depends(get_current_admin),
) -> AuthenticatedPrincipal:
    if not is_superadmin(current.snapshot):
        raise PermissionDenied("Only superadmins can perform this action")
    return current


async def get_current_user_optional(
    request: Request,
    authorization: Optional[str] = Header(None),
    issuer: TokenIssuer = Depends(get_issuer),
    credentials: CredentialStore = Depends(get_credentials),
    registry: SessionRegistry = Depends(get_registry),
) -> Optional[AuthenticatedPrincipal]:
    """Soft variant for routes that work with or without a live session.

    Learn: Only authentication failures turn into None. A token whose
    session was superseded also yields None, so it can never end the
    session that replaced it.
    """
    token = extract_token(PrincipalKind.USER, authorization, request.cookies)
    if not token:
        return None
    gate = AuthenticationGate(issuer, credentials, registry)
    try:
        current = await gate.authenticate(PrincipalKind.USER, token)
    except (Unauthenticated, SessionExpired):
        return None
    request.state.principal = current
    return current
