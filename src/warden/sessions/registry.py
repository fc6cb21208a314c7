"""Session registry: at most one live session per principal.

Learn: The registry is the single source of truth for "is this principal
logged in". It is a key-value store with TTL:

    key:   session:{kind}:{principal_id}
    value: {"sessionId", "userAgent", "ip", "loginTime"}   (JSON)

Redis enforces the TTL itself; an entry can vanish at any moment, so
callers must never assume logout is the only way a session ends.

Each operation touches exactly one key and is atomic on its own
(SET ... EX is a single command). There are no multi-key transactions:
two simultaneous logins may both see "no session" and both write; the
last write wins. That is accepted.

Writes are shielded from caller cancellation so an abandoned request
still completes or fails the write as a whole.
"""

import asyncio
import json
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Protocol

import redis.asyncio as aioredis
import structlog
from fastapi import Request
from redis.exceptions import RedisError

from warden.auth.jwt import PrincipalKind
from warden.errors import InfrastructureError, bounded

logger = structlog.get_logger()


@dataclass(frozen=True)
class SessionRecord:
    session_id: str
    user_agent: Optional[str] = None
    ip: Optional[str] = None
    login_time: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def to_json(self) -> str:
        return json.dumps({
            "sessionId": self.session_id,
            "userAgent": self.user_agent,
            "ip": self.ip,
            "loginTime": self.login_time,
        })

    @classmethod
    def from_json(cls, raw: str) -> Optional["SessionRecord"]:
        """Parse a stored value. Corrupt entries read as "no session"."""
        try:
            data = json.loads(raw)
            return cls(
                session_id=data["sessionId"],
                user_agent=data.get("userAgent"),
                ip=data.get("ip"),
                login_time=data.get("loginTime") or "",
            )
        except (ValueError, KeyError, TypeError):
            return None


def session_key(kind: PrincipalKind, principal_id: str) -> str:
    return f"session:{PrincipalKind(kind).value}:{principal_id}"


class SessionRegistry(Protocol):
    async def get(self, kind: PrincipalKind, principal_id: str) -> Optional[SessionRecord]: ...

    async def set(
        self,
        kind: PrincipalKind,
        principal_id: str,
        record: SessionRecord,
        ttl_seconds: int,
    ) -> None: ...

    async def delete(self, kind: PrincipalKind, principal_id: str) -> None: ...


# ─── Redis ──────────────────────────────────────────────


class RedisSessionRegistry:
    """Registry backed by Redis. All calls bounded by a timeout."""

    def __init__(self, client: aioredis.Redis, timeout: float = 2.0):
        self.client = client
        self.timeout = timeout

    async def get(self, kind: PrincipalKind, principal_id: str) -> Optional[SessionRecord]:
        key = session_key(kind, principal_id)
        raw = await self._call(self.client.get(key), "session get")
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        record = SessionRecord.from_json(raw)
        if record is None:
            logger.warning("session.corrupt_record", key=key)
        return record

    async def set(
        self,
        kind: PrincipalKind,
        principal_id: str,
        record: SessionRecord,
        ttl_seconds: int,
    ) -> None:
        key = session_key(kind, principal_id)
        write = self.client.set(key, record.to_json(), ex=ttl_seconds)
        await self._call(asyncio.shield(write), "session set")
        logger.debug("session.stored", key=key, ttl=ttl_seconds)

    async def delete(self, kind: PrincipalKind, principal_id: str) -> None:
        key = session_key(kind, principal_id)
        await self._call(asyncio.shield(self.client.delete(key)), "session delete")
        logger.debug("session.removed", key=key)

    async def _call(self, awaitable, what: str):
        try:
            return await bounded(awaitable, self.timeout, what)
        except RedisError as e:
            logger.error("session.registry_error", operation=what, error=str(e))
            raise InfrastructureError(f"{what} failed: session store unreachable") from e


async def connect_redis(redis_url: str) -> aioredis.Redis:
    """Create a Redis connection pool and verify it answers."""
    client = aioredis.from_url(
        redis_url,
        encoding="utf-8",
        decode_responses=True,
        socket_timeout=5,
        socket_connect_timeout=5,
    )
    await client.ping()
    return client


# ─── In-memory ──────────────────────────────────────────


class InMemorySessionRegistry:
    """Process-local registry with the same TTL semantics.

    Learn: Used for local development when Redis is down, and in tests.
    Expiry is checked lazily on read against a monotonic clock, which
    behaves like Redis from the caller's point of view.
    """

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._entries: dict[str, tuple[SessionRecord, float]] = {}
        self._lock = asyncio.Lock()

    async def get(self, kind: PrincipalKind, principal_id: str) -> Optional[SessionRecord]:
        key = session_key(kind, principal_id)
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            record, expires_at = entry
            if expires_at <= self._clock():
                del self._entries[key]
                return None
            return record

    async def set(
        self,
        kind: PrincipalKind,
        principal_id: str,
        record: SessionRecord,
        ttl_seconds: int,
    ) -> None:
        key = session_key(kind, principal_id)
        async with self._lock:
            self._entries[key] = (record, self._clock() + ttl_seconds)

    async def delete(self, kind: PrincipalKind, principal_id: str) -> None:
        async with self._lock:
            self._entries.pop(session_key(kind, principal_id), None)

    def __len__(self) -> int:
        now = self._clock()
        return sum(1 for _, expires_at in self._entries.values() if expires_at > now)


def get_registry(request: Request) -> SessionRegistry:
    """FastAPI dependency: the registry wired up by the app lifespan."""
    return request.app.state.registry
