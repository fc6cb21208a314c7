"""Credential store: principal lookup, secret verification, lockout persistence.

Learn: Both principal tables (users, admins) carry the same credential
and lockout columns, so one store serves both kinds; the kind picks the
model class. Lookups return None for "not found" rather than raising.

Email policy: addresses are normalized to lower case on write and
compared lower-cased on lookup, for users and admins alike.
"""

import uuid
from typing import Optional, Union

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from warden.auth.jwt import PrincipalKind
from warden.auth.lockout import FailureOutcome, LockoutPolicy
from warden.auth.password import DUMMY_HASH, verify_password
from warden.db.models import Admin, User
from warden.errors import bounded

Principal = Union[User, Admin]

_MODELS = {
    PrincipalKind.USER: User,
    PrincipalKind.ADMIN: Admin,
}


def normalize_email(email: str) -> str:
    return email.strip().lower()


def parse_principal_id(value: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(str(value))
    except (ValueError, TypeError):
        return None


class CredentialStore:
    """Reads principals and persists lockout counters."""

    def __init__(
        self,
        db: AsyncSession,
        policy: Optional[LockoutPolicy] = None,
        timeout: float = 5.0,
    ):
        self.db = db
        self.policy = policy or LockoutPolicy()
        self.timeout = timeout

    # ─── Lookups ────────────────────────────────────────

    async def get_by_email(self, kind: PrincipalKind, email: str) -> Optional[Principal]:
        model = _MODELS[kind]
        q = select(model).where(func.lower(model.email) == normalize_email(email))
        result = await bounded(self.db.execute(q), self.timeout, f"{kind.value} lookup")
        return result.scalars().first()

    async def get(self, kind: PrincipalKind, principal_id: str) -> Optional[Principal]:
        pid = parse_principal_id(principal_id)
        if pid is None:
            return None
        model = _MODELS[kind]
        return await bounded(self.db.get(model, pid), self.timeout, f"{kind.value} load")

    async def email_taken(
        self, kind: PrincipalKind, email: str, exclude_id: Optional[uuid.UUID] = None
    ) -> bool:
        model = _MODELS[kind]
        q = select(model.id).where(func.lower(model.email) == normalize_email(email))
        if exclude_id is not None:
            q = q.where(model.id != exclude_id)
        result = await bounded(self.db.execute(q), self.timeout, f"{kind.value} lookup")
        return result.first() is not None

    # ─── Verification ───────────────────────────────────

    @staticmethod
    def verify(principal: Optional[Principal], candidate: str) -> bool:
        """Constant-time check. Unknown principals burn the same bcrypt cost."""
        if principal is None:
            verify_password(candidate, DUMMY_HASH)
            return False
        return verify_password(candidate, principal.password_hash)

    def is_locked(self, principal: Principal) -> bool:
        return self.policy.is_locked(principal)

    def minutes_remaining(self, principal: Principal) -> int:
        return self.policy.minutes_remaining(principal)

    # ─── Lockout persistence ────────────────────────────

    async def clear_expired_lock(self, principal: Principal) -> None:
        if self.policy.clear_expired(principal):
            await self._save()

    async def record_failure(self, principal: Principal) -> FailureOutcome:
        outcome = self.policy.record_failure(principal)
        await self._save()
        return outcome

    async def record_success(self, principal: Principal) -> None:
        if principal.login_attempts or principal.lock_until is not None:
            self.policy.record_success(principal)
            await self._save()

    async def _save(self) -> None:
        await bounded(self.db.commit(), self.timeout, "credential save")
