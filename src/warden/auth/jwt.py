"""JWT token issuance and verification.

Learn: JWT (JSON Web Token) provides stateless authentication, but a
signature alone cannot be revoked. Every token here carries a session id
("sid") that must match the live session record in the registry, so a
newer login (force login) invalidates older tokens without a blacklist.

Claims:
- sub:  principal id (UUID string)
- kind: "user" or "admin"
- sid:  128-bit random session id, fresh per login
- iat / exp: issue time and expiry

Rotating the signing secret invalidates every outstanding token.
"""

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum

import jwt


class PrincipalKind(str, Enum):
    USER = "user"
    ADMIN = "admin"


class TokenError(Exception):
    """Raised when token verification fails."""


class TokenMalformed(TokenError):
    """Not a JWT, or a JWT missing required claims."""


class TokenBadSignature(TokenError):
    """Signed with a different secret or algorithm."""


class TokenExpired(TokenError):
    """Signature valid but past its exp claim."""


@dataclass(frozen=True)
class TokenClaims:
    principal_id: str
    kind: PrincipalKind
    session_id: str
    expires_at: datetime


@dataclass(frozen=True)
class IssuedToken:
    token: str
    session_id: str
    expires_at: datetime


def new_session_id() -> str:
    """128 bits from the OS CSPRNG, hex encoded."""
    return secrets.token_hex(16)


class TokenIssuer:
    """Signs and verifies session-bound tokens with a shared secret."""

    def __init__(self, secret: str, algorithm: str = "HS256", expire_minutes: int = 60 * 24):
        self.secret = secret
        self.algorithm = algorithm
        self.expire_minutes = expire_minutes

    def issue(self, principal_id: str, kind: PrincipalKind) -> IssuedToken:
        """Create a token bound to a freshly generated session id."""
        now = datetime.now(timezone.utc)
        expires = now + timedelta(minutes=self.expire_minutes)
        session_id = new_session_id()
        payload = {
            "sub": str(principal_id),
            "kind": PrincipalKind(kind).value,
            "sid": session_id,
            "iat": now,
            "exp": expires,
        }
        token = jwt.encode(payload, self.secret, algorithm=self.algorithm)
        return IssuedToken(token=token, session_id=session_id, expires_at=expires)

    def verify(self, token: str) -> TokenClaims:
        """Verify signature and expiry, return typed claims.

        Raises TokenMalformed, TokenBadSignature or TokenExpired.
        """
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"require": ["exp", "sub", "sid"]},
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpired("Token has expired")
        except jwt.InvalidSignatureError:
            raise TokenBadSignature("Token signature mismatch")
        except jwt.InvalidTokenError as e:
            raise TokenMalformed(f"Invalid token: {e}")

        try:
            kind = PrincipalKind(payload.get("kind"))
        except ValueError:
            raise TokenMalformed("Token carries an unknown principal kind")

        return TokenClaims(
            principal_id=str(payload["sub"]),
            kind=kind,
            session_id=str(payload["sid"]),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )
