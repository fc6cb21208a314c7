"""Progressive lockout state machine.

Learn: Each principal is either Unlocked(attempts) or Locked(until).

    Unlocked(0) ──fail──▶ Unlocked(1) ──fail──▶ Unlocked(2) ──fail──▶ Locked(now + 1h)
         ▲                                                               │
         └────────────── success, or lock expired at next attempt ───────┘

There is no background timer: an expired lock is noticed lazily at the
next login attempt. The attempt counter is left at the triggering value
when the lock is set so the UI can still say "locked"; a locked account
is rejected before its password is checked, so the counter cannot grow
while the lock holds.

The policy mutates the principal row in memory; persisting is the
CredentialStore's job.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol


class LockablePrincipal(Protocol):
    login_attempts: int
    lock_until: Optional[datetime]


@dataclass(frozen=True)
class FailureOutcome:
    """Result of recording a failed attempt.

    remaining_attempts is clamped at zero; locked=True is the "now locked"
    sentinel callers turn into a lock message.
    """

    attempts: int
    remaining_attempts: int
    locked: bool
    lock_until: Optional[datetime] = None


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class LockoutPolicy:
    max_attempts: int = 3
    lock_duration: timedelta = timedelta(hours=1)

    def is_locked(self, principal: LockablePrincipal, now: Optional[datetime] = None) -> bool:
        """True iff a lock timestamp is set and still in the future."""
        now = now or datetime.now(timezone.utc)
        lock_until = as_utc(principal.lock_until)
        return lock_until is not None and lock_until > now

    def lock_expired(self, principal: LockablePrincipal, now: Optional[datetime] = None) -> bool:
        """A lock was set but has run out."""
        now = now or datetime.now(timezone.utc)
        lock_until = as_utc(principal.lock_until)
        return lock_until is not None and lock_until <= now

    def minutes_remaining(self, principal: LockablePrincipal, now: Optional[datetime] = None) -> int:
        """Ceiling of the remaining lock time in minutes (0 when unlocked)."""
        now = now or datetime.now(timezone.utc)
        lock_until = as_utc(principal.lock_until)
        if lock_until is None or lock_until <= now:
            return 0
        millis = (lock_until - now).total_seconds() * 1000
        return math.ceil(millis / 60000)

    def record_failure(
        self, principal: LockablePrincipal, now: Optional[datetime] = None
    ) -> FailureOutcome:
        """Count a failed attempt; lock once the threshold is reached."""
        now = now or datetime.now(timezone.utc)
        principal.login_attempts = (principal.login_attempts or 0) + 1
        if principal.login_attempts >= self.max_attempts:
            principal.lock_until = now + self.lock_duration
            return FailureOutcome(
                attempts=principal.login_attempts,
                remaining_attempts=0,
                locked=True,
                lock_until=principal.lock_until,
            )
        return FailureOutcome(
            attempts=principal.login_attempts,
            remaining_attempts=max(0, self.max_attempts - principal.login_attempts),
            locked=False,
        )

    def record_success(self, principal: LockablePrincipal) -> None:
        principal.login_attempts = 0
        principal.lock_until = None

    def clear_expired(self, principal: LockablePrincipal, now: Optional[datetime] = None) -> bool:
        """Reset a naturally expired lock. Returns True if anything changed."""
        if not self.lock_expired(principal, now):
            return False
        principal.login_attempts = 0
        principal.lock_until = None
        return True
