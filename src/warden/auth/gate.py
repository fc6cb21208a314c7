"""Authentication gate: token + live session → authenticated principal.

Learn: A valid signature is necessary but not sufficient. The gate runs
every check in order and stops at the first failure:

1. a token must be present (Bearer header, else the kind's cookie)
2. signature and expiry must verify
3. the token's kind must match the endpoint's kind (user vs admin)
4. the principal must still exist and be active
5. a live session record must exist for (kind, id)
6. the record's session id must equal the token's session id

Steps 1-4 fail as Unauthenticated; 5-6 as SessionExpired. Step 6 is what
makes force login work: the new login overwrote the record, so every
token minted for the old session stops matching. Token failure reasons
are logged but never returned to the caller.
"""

from dataclasses import dataclass
from typing import Optional, Union

import structlog

from warden.auth.credentials import CredentialStore
from warden.auth.jwt import PrincipalKind, TokenClaims, TokenError, TokenIssuer
from warden.db.models import Admin, User
from warden.errors import SessionExpired, Unauthenticated
from warden.rbac.resolver import PrincipalSnapshot, snapshot_principal
from warden.sessions.registry import SessionRegistry

logger = structlog.get_logger()

COOKIE_NAMES = {
    PrincipalKind.USER: "token",
    PrincipalKind.ADMIN: "admin_token",
}


def extract_token(
    kind: PrincipalKind,
    authorization: Optional[str],
    cookies: dict[str, str],
) -> Optional[str]:
    """Bearer header wins; otherwise the cookie for this principal kind."""
    if authorization and authorization.startswith("Bearer "):
        token = authorization[7:].strip()
        if token:
            return token
    token = cookies.get(COOKIE_NAMES[kind])
    if token and token != "loggedout":
        return token
    return None


@dataclass(frozen=True)
class AuthenticatedPrincipal:
    """What the gate attaches to the request."""

    principal: Union[User, Admin]
    snapshot: PrincipalSnapshot
    claims: TokenClaims

    @property
    def id(self) -> str:
        return self.snapshot.principal_id

    @property
    def kind(self) -> PrincipalKind:
        return self.snapshot.kind


class AuthenticationGate:
    def __init__(
        self,
        issuer: TokenIssuer,
        credentials: CredentialStore,
        registry: SessionRegistry,
    ):
        self.issuer = issuer
        self.credentials = credentials
        self.registry = registry

    async def authenticate(
        self, kind: PrincipalKind, token: Optional[str]
    ) -> AuthenticatedPrincipal:
        if not token:
            raise Unauthenticated()

        try:
            claims = self.issuer.verify(token)
        except TokenError as e:
            logger.info("auth.token_rejected", kind=kind.value, reason=type(e).__name__)
            raise Unauthenticated("Invalid token or authorization failed.")

        if claims.kind != kind:
            logger.info("auth.kind_mismatch", expected=kind.value, got=claims.kind.value)
            if kind == PrincipalKind.ADMIN:
                raise Unauthenticated("Invalid token. Admin access required.")
            raise Unauthenticated("Invalid token or authorization failed.")

        principal = await self.credentials.get(kind, claims.principal_id)
        if principal is None:
            raise Unauthenticated(
                f"The {kind.value} belonging to this token no longer exists."
            )
        if not principal.is_active:
            raise Unauthenticated(f"This {kind.value} account has been deactivated.")

        record = await self.registry.get(kind, claims.principal_id)
        if record is None:
            raise SessionExpired()
        if record.session_id != claims.session_id:
            logger.info(
                "auth.session_superseded",
                kind=kind.value,
                principal_id=claims.principal_id,
            )
            raise SessionExpired("Invalid session. Please log in again.")

        return AuthenticatedPrincipal(
            principal=principal,
            snapshot=snapshot_principal(principal, kind),
            claims=claims,
        )
