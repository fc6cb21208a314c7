"""Lockout state machine tests (no database).

Learn: The policy only mutates attributes, so a SimpleNamespace stands in
for a User/Admin row. Time is passed explicitly to make expiry exact.
"""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from warden.auth.lockout import LockoutPolicy, as_utc

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def principal(attempts=0, lock_until=None):
    return SimpleNamespace(login_attempts=attempts, lock_until=lock_until)


def test_failures_count_down_then_lock():
    policy = LockoutPolicy()
    p = principal()

    first = policy.record_failure(p, now=NOW)
    assert (first.attempts, first.remaining_attempts, first.locked) == (1, 2, False)

    second = policy.record_failure(p, now=NOW)
    assert (second.attempts, second.remaining_attempts, second.locked) == (2, 1, False)

    third = policy.record_failure(p, now=NOW)
    assert third.locked is True
    assert third.remaining_attempts == 0
    assert p.lock_until == NOW + timedelta(hours=1)
    assert policy.is_locked(p, now=NOW)


def test_remaining_attempts_never_negative():
    policy = LockoutPolicy(max_attempts=3)
    p = principal(attempts=7)
    outcome = policy.record_failure(p, now=NOW)
    assert outcome.remaining_attempts == 0
    assert outcome.locked


def test_success_resets_counter_and_lock():
    policy = LockoutPolicy()
    p = principal(attempts=2, lock_until=NOW + timedelta(minutes=5))
    policy.record_success(p)
    assert p.login_attempts == 0
    assert p.lock_until is None


def test_minutes_remaining_rounds_up():
    policy = LockoutPolicy()
    p = principal(attempts=3, lock_until=NOW + timedelta(minutes=59, seconds=1))
    assert policy.minutes_remaining(p, now=NOW) == 60

    p.lock_until = NOW + timedelta(seconds=1)
    assert policy.minutes_remaining(p, now=NOW) == 1


def test_minutes_remaining_zero_when_unlocked():
    policy = LockoutPolicy()
    assert policy.minutes_remaining(principal(), now=NOW) == 0
    expired = principal(attempts=3, lock_until=NOW - timedelta(seconds=1))
    assert policy.minutes_remaining(expired, now=NOW) == 0


def test_expired_lock_cleared_lazily():
    policy = LockoutPolicy()
    p = principal(attempts=3, lock_until=NOW - timedelta(minutes=1))

    assert not policy.is_locked(p, now=NOW)
    assert policy.lock_expired(p, now=NOW)
    assert policy.clear_expired(p, now=NOW) is True
    assert p.login_attempts == 0
    assert p.lock_until is None
    # Nothing left to clear
    assert policy.clear_expired(p, now=NOW) is False


def test_active_lock_not_cleared():
    policy = LockoutPolicy()
    p = principal(attempts=3, lock_until=NOW + timedelta(minutes=30))
    assert policy.clear_expired(p, now=NOW) is False
    assert p.login_attempts == 3


def test_naive_datetimes_treated_as_utc():
    naive = datetime(2026, 1, 1, 13, 0)
    assert as_utc(naive) == datetime(2026, 1, 1, 13, 0, tzinfo=timezone.utc)
    policy = LockoutPolicy()
    assert policy.is_locked(principal(attempts=3, lock_until=naive), now=NOW)
