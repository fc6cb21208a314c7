"""Auth service: login, logout, and self-registration.

Learn: Login is the one place where every core component meets:

    lookup by email ─▶ lock check ─▶ password check ─▶ live session check
         ─▶ issue token (fresh session id) ─▶ store session record

Order matters:
- A locked account is rejected BEFORE the password is checked, so
  attempts while locked do not move the counter.
- An expired lock is cleared lazily here, at the next attempt.
- The session check comes AFTER the password check so an attacker
  without the password cannot learn that someone is logged in.
- With force_login=True an existing record is deleted first; the new
  record then carries a new session id, which invalidates every token
  minted for the old session (see AuthenticationGate).

Unknown emails and wrong passwords produce the same message.
"""

from dataclasses import dataclass
from typing import Optional, Union

import structlog

from warden.audit.logger import ActivityLogger, ClientInfo
from warden.auth.credentials import CredentialStore, normalize_email
from warden.auth.jwt import IssuedToken, PrincipalKind, TokenIssuer
from warden.auth.password import hash_password
from warden.db.models import Admin, User
from warden.errors import (
    AccountLocked,
    Conflict,
    InvalidCredentials,
    SessionConflict,
    commit_or_conflict,
)
from warden.sessions.registry import SessionRecord, SessionRegistry

logger = structlog.get_logger()

_AUDIT_MODULE = {
    PrincipalKind.USER: "User/Auth",
    PrincipalKind.ADMIN: "Auth",
}


@dataclass(frozen=True)
class LoginResult:
    principal: Union[User, Admin]
    token: str
    session_id: str
    forced: bool = False


class AuthService:
    """Business logic for establishing and ending sessions."""

    def __init__(
        self,
        credentials: CredentialStore,
        registry: SessionRegistry,
        issuer: TokenIssuer,
        audit: Optional[ActivityLogger] = None,
        session_ttl_seconds: int = 86400,
    ):
        self.credentials = credentials
        self.registry = registry
        self.issuer = issuer
        self.audit = audit
        self.session_ttl_seconds = session_ttl_seconds

    # ─── Login ──────────────────────────────────────────

    async def login(
        self,
        kind: PrincipalKind,
        email: str,
        password: str,
        force_login: bool = False,
        client: Optional[ClientInfo] = None,
    ) -> LoginResult:
        log = logger.bind(kind=kind.value)
        principal = await self.credentials.get_by_email(kind, email)

        if principal is None:
            # Burn the same bcrypt cost as a real check
            self.credentials.verify(None, password)
            log.info("auth.login_failed", reason="unknown_email")
            raise InvalidCredentials()

        await self.credentials.clear_expired_lock(principal)

        if self.credentials.is_locked(principal):
            minutes = self.credentials.minutes_remaining(principal)
            log.info("auth.login_locked", principal_id=str(principal.id), minutes=minutes)
            raise AccountLocked(minutes)

        if not self.credentials.verify(principal, password):
            outcome = await self.credentials.record_failure(principal)
            log.info(
                "auth.login_failed",
                reason="bad_password",
                principal_id=str(principal.id),
                attempts=outcome.attempts,
                locked=outcome.locked,
            )
            if outcome.locked:
                raise AccountLocked(
                    self.credentials.minutes_remaining(principal),
                    message="Account locked for 1 hour due to too many failed attempts.",
                )
            raise InvalidCredentials(
                f"Incorrect email or password. {outcome.remaining_attempts} attempts remaining.",
                remaining_attempts=outcome.remaining_attempts,
            )

        if kind == PrincipalKind.ADMIN and not principal.is_active:
            # Deactivated admins cannot hold a session; do not say why
            log.info("auth.login_failed", reason="inactive", principal_id=str(principal.id))
            raise InvalidCredentials()

        principal_id = str(principal.id)
        existing = await self.registry.get(kind, principal_id)
        if existing is not None and not force_login:
            log.info("auth.session_conflict", principal_id=principal_id)
            raise SessionConflict(can_force_login=True)

        forced = existing is not None
        if forced:
            await self.registry.delete(kind, principal_id)
            log.info("auth.force_login", principal_id=principal_id)
            await self._audit(
                kind,
                principal_id,
                action="force_login",
                description=f"{kind.value.capitalize()} forced login and terminated other sessions",
                client=client,
            )

        await self.credentials.record_success(principal)
        issued = await self._open_session(kind, principal_id, client)

        log.info("auth.login_succeeded", principal_id=principal_id, forced=forced)
        await self._audit(
            kind,
            principal_id,
            action="login",
            description=f"{kind.value.capitalize()} logged in successfully",
            client=client,
        )
        return LoginResult(
            principal=principal,
            token=issued.token,
            session_id=issued.session_id,
            forced=forced,
        )

    # ─── Logout ─────────────────────────────────────────

    async def logout(
        self,
        kind: PrincipalKind,
        principal_id: str,
        client: Optional[ClientInfo] = None,
    ) -> None:
        await self.registry.delete(kind, principal_id)
        logger.info("auth.logout", kind=kind.value, principal_id=principal_id)
        await self._audit(
            kind,
            principal_id,
            action="logout",
            description=f"{kind.value.capitalize()} logged out",
            client=client,
        )

    # ─── Registration (end users) ───────────────────────

    async def register_user(
        self,
        first_name: str,
        last_name: str,
        email: str,
        password: str,
        client: Optional[ClientInfo] = None,
    ) -> LoginResult:
        """Create a user and log them straight in."""
        if await self.credentials.email_taken(PrincipalKind.USER, email):
            raise Conflict("Email is already in use")

        user = User(
            first_name=first_name,
            last_name=last_name,
            email=normalize_email(email),
            password_hash=hash_password(password),
        )
        db = self.credentials.db
        db.add(user)
        await commit_or_conflict(
            db, self.credentials.timeout, "user create", "Email is already in use"
        )
        await db.refresh(user)

        user_id = str(user.id)
        issued = await self._open_session(PrincipalKind.USER, user_id, client)
        logger.info("auth.registered", principal_id=user_id)
        await self.audit_log(
            action="register",
            entity_type="User",
            entity_id=user_id,
            description=f"User registered: {first_name} {last_name}",
            actor_id=user_id,
            actor_kind=PrincipalKind.USER,
            module="User/Auth",
            client=client,
        )
        return LoginResult(principal=user, token=issued.token, session_id=issued.session_id)

    # ─── Internals ──────────────────────────────────────

    async def _open_session(
        self,
        kind: PrincipalKind,
        principal_id: str,
        client: Optional[ClientInfo],
    ) -> IssuedToken:
        issued = self.issuer.issue(principal_id, kind)
        record = SessionRecord(
            session_id=issued.session_id,
            user_agent=client.user_agent if client else None,
            ip=client.ip if client else None,
        )
        await self.registry.set(kind, principal_id, record, self.session_ttl_seconds)
        return issued

    async def _audit(
        self,
        kind: PrincipalKind,
        principal_id: str,
        *,
        action: str,
        description: str,
        client: Optional[ClientInfo],
    ) -> None:
        await self.audit_log(
            action=action,
            entity_type="Authentication",
            description=description,
            actor_id=principal_id,
            actor_kind=kind,
            module=_AUDIT_MODULE[kind],
            client=client,
        )

    async def audit_log(self, **entry) -> None:
        if self.audit is not None:
            await self.audit.log(**entry)
