"""Tests for middleware: security headers, request IDs, rate limiting.

Learn: The suite runs without Redis, so app.state.redis is None and the
rate limiter steps aside. The limiter itself is exercised by putting an
AsyncMock in app.state.redis.
"""

from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError


@pytest.mark.asyncio
async def test_security_headers_on_health(client):
    r = await client.get("/api/v1/health")
    assert r.status_code == 200
    assert r.headers["X-Content-Type-Options"] == "nosniff"
    assert r.headers["X-Frame-Options"] == "DENY"
    assert r.headers["X-XSS-Protection"] == "1; mode=block"
    assert r.headers["Referrer-Policy"] == "strict-origin-when-cross-origin"


@pytest.mark.asyncio
async def test_auth_responses_not_cached(client):
    r = await client.post("/api/v1/auth/login", json={"email": "x@example.com", "password": "whatever1"})
    assert r.headers["Cache-Control"] == "no-store"


@pytest.mark.asyncio
async def test_request_id_generated(client):
    r1 = await client.get("/api/v1/health")
    r2 = await client.get("/api/v1/health")
    assert "X-Request-ID" in r1.headers
    assert r1.headers["X-Request-ID"] != r2.headers["X-Request-ID"]


@pytest.mark.asyncio
async def test_request_id_propagated(client):
    r = await client.get("/api/v1/health", headers={"X-Request-ID": "test-trace-12345"})
    assert r.headers["X-Request-ID"] == "test-trace-12345"


@pytest.mark.asyncio
async def test_oversized_request_id_replaced(client):
    r = await client.get("/api/v1/health", headers={"X-Request-ID": "x" * 500})
    assert len(r.headers["X-Request-ID"]) == 32


@pytest.mark.asyncio
async def test_no_hsts_on_http(client):
    r = await client.get("/api/v1/health")
    assert "Strict-Transport-Security" not in r.headers


@pytest.mark.asyncio
async def test_hsts_behind_tls_proxy(client):
    r = await client.get("/api/v1/health", headers={"X-Forwarded-Proto": "https"})
    assert "Strict-Transport-Security" in r.headers


# ═══════════════════════════════════════════════════════════
# Rate limiting
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_rate_limit_blocks_over_auth_limit(client):
    from warden.main import app

    redis = AsyncMock()
    redis.incr.return_value = 11  # auth limit is 10/min
    app.state.redis = redis

    r = await client.post(
        "/api/v1/admin/auth/login", json={"email": "x@example.com", "password": "whatever1"}
    )
    assert r.status_code == 429
    assert r.headers["Retry-After"] == "60"
    key = redis.incr.call_args.args[0]
    assert ":auth:" in key


@pytest.mark.asyncio
async def test_rate_limit_headers_under_limit(client):
    from warden.main import app

    redis = AsyncMock()
    redis.incr.return_value = 1
    redis.ping.return_value = True
    app.state.redis = redis

    r = await client.get("/api/v1/health")
    assert r.status_code == 200
    assert r.headers["X-RateLimit-Limit"] == "100"
    assert r.headers["X-RateLimit-Remaining"] == "99"
    redis.expire.assert_awaited_once()


@pytest.mark.asyncio
async def test_rate_limit_fails_open_on_redis_error(client):
    from warden.main import app

    redis = AsyncMock()
    redis.incr.side_effect = RedisConnectionError("down")
    redis.ping.side_effect = RedisConnectionError("down")
    app.state.redis = redis

    r = await client.get("/api/v1/health")
    assert r.status_code == 200
    assert r.json()["status"] == "degraded"
