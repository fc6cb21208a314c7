"""Authentication API tests: users and admins end to end.

Learn: Tests cover:
1. Registration (logs straight in) + duplicate/validation rejection
2. Login failures: generic message, remaining attempts, lockout
3. Single session: conflict, force login, old token rejected
4. The gate: kind mismatch, missing token, deleted/deactivated principal
5. Logout: session dropped, cookie overwritten, stale tokens harmless
6. Registry outage → 503, never "not logged in"

The httpx client keeps cookies between requests, like a browser. Tests
that need an anonymous request clear the jar first.
"""

import asyncio
import uuid
from datetime import datetime, timedelta, timezone

import jwt
import pytest
from sqlalchemy import select

from conftest import (
    ROOT_EMAIL,
    ROOT_PASSWORD,
    TEST_SECRET,
    admin_login,
    bearer,
    make_admin,
    make_role,
)
from warden.auth.credentials import CredentialStore
from warden.auth.jwt import PrincipalKind
from warden.db.models import ActivityLog, Admin, User
from warden.errors import InfrastructureError


async def register(client, email=None, password="user-password-123"):
    email = email or f"user-{uuid.uuid4().hex[:8]}@example.com"
    r = await client.post(
        "/api/v1/auth/register",
        json={
            "firstName": "Test",
            "lastName": "User",
            "email": email,
            "password": password,
        },
    )
    assert r.status_code == 201, r.text
    return email, password, r.json()


async def user_login(client, email, password, force=False):
    return await client.post(
        "/api/v1/auth/login",
        json={"email": email, "password": password, "forceLogin": force},
    )


# ═══════════════════════════════════════════════════════════
# Registration
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_register_logs_user_in(client, registry):
    """Registration creates the user, a session, and sets the cookie."""
    email, _, body = await register(client, email="New.Person@Example.com")

    assert body["status"] == "success"
    assert body["data"]["email"] == "new.person@example.com"
    assert body["data"]["first_name"] == "Test"
    assert "password_hash" not in body["data"]
    assert client.cookies.get("token") == body["token"]

    record = await registry.get(PrincipalKind.USER, body["data"]["id"])
    assert record is not None

    r = await client.get("/api/v1/auth/me", headers=bearer(body["token"]))
    assert r.status_code == 200
    assert r.json()["id"] == body["data"]["id"]


@pytest.mark.asyncio
async def test_register_duplicate_email_any_case(client):
    email, _, _ = await register(client)
    r = await client.post(
        "/api/v1/auth/register",
        json={
            "firstName": "Other",
            "lastName": "Person",
            "email": email.upper(),
            "password": "another-password",
        },
    )
    assert r.status_code == 400
    assert r.json()["code"] == "conflict"
    assert r.json()["message"] == "Email is already in use"


@pytest.mark.asyncio
async def test_concurrent_duplicate_registrations(client, db):
    """Exactly one wins; the rest get a conflict, never a 500."""
    body = {
        "firstName": "Race",
        "lastName": "Condition",
        "email": "race@example.com",
        "password": "user-password-123",
    }
    responses = await asyncio.gather(
        *(client.post("/api/v1/auth/register", json=body) for _ in range(5))
    )

    statuses = sorted(r.status_code for r in responses)
    assert statuses == [201, 400, 400, 400, 400]
    for r in responses:
        if r.status_code == 400:
            assert r.json()["code"] == "conflict"
            assert r.json()["message"] == "Email is already in use"

    users = (await db.execute(select(User).where(User.email == "race@example.com"))).scalars()
    assert len(users.all()) == 1


@pytest.mark.asyncio
async def test_register_past_email_check_still_conflicts(client, monkeypatch):
    """A registration that slips past the email check still ends as a conflict."""
    email, _, _ = await register(client)

    async def never_taken(self, kind, email, exclude_id=None):
        return False

    monkeypatch.setattr(CredentialStore, "email_taken", never_taken)
    r = await client.post(
        "/api/v1/auth/register",
        json={
            "firstName": "Late",
            "lastName": "Comer",
            "email": email,
            "password": "another-password",
        },
    )
    assert r.status_code == 400
    assert r.json()["code"] == "conflict"
    assert r.json()["message"] == "Email is already in use"


@pytest.mark.asyncio
async def test_register_validation(client):
    """Short password or one-letter names are rejected before any work."""
    r = await client.post(
        "/api/v1/auth/register",
        json={"firstName": "Al", "lastName": "Bo", "email": "a@example.com", "password": "short"},
    )
    assert r.status_code == 422

    r = await client.post(
        "/api/v1/auth/register",
        json={"firstName": "A", "lastName": "Bo", "email": "a@example.com", "password": "long-enough"},
    )
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_token_claims_bind_session(client, registry):
    """The token's sid is exactly the session id stored in the registry."""
    _, _, body = await register(client)
    claims = jwt.decode(body["token"], TEST_SECRET, algorithms=["HS256"])

    assert claims["sub"] == body["data"]["id"]
    assert claims["kind"] == "user"
    record = await registry.get(PrincipalKind.USER, claims["sub"])
    assert record.session_id == claims["sid"]


# ═══════════════════════════════════════════════════════════
# Login failures and lockout
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_login_unknown_email_is_generic(client):
    r = await user_login(client, "nobody@example.com", "whatever-password")
    assert r.status_code == 401
    data = r.json()
    assert data["code"] == "invalid_credentials"
    assert data["message"].startswith("Incorrect email or password")
    assert "remainingAttempts" not in data


@pytest.mark.asyncio
async def test_wrong_password_counts_down_then_locks(client, registry, db):
    email, password, body = await register(client)
    await registry.delete(PrincipalKind.USER, body["data"]["id"])

    r1 = await user_login(client, email, "wrong-password")
    assert r1.status_code == 401
    assert r1.json()["remainingAttempts"] == 2
    assert r1.json()["message"] == "Incorrect email or password. 2 attempts remaining."

    r2 = await user_login(client, email, "wrong-password")
    assert r2.json()["remainingAttempts"] == 1

    r3 = await user_login(client, email, "wrong-password")
    assert r3.status_code == 401
    assert r3.json()["code"] == "account_locked"
    assert r3.json()["minutesRemaining"] == 60

    # Wrong password while locked is refused without counting
    r4 = await user_login(client, email, "wrong-password")
    assert r4.status_code == 401
    assert r4.json()["code"] == "account_locked"

    # Correct password while locked is still refused
    r5 = await user_login(client, email, password)
    assert r5.status_code == 401
    assert r5.json()["code"] == "account_locked"
    assert 0 < r5.json()["minutesRemaining"] <= 60

    user = (await db.execute(select(User).where(User.email == email))).scalars().one()
    await db.refresh(user)
    assert user.login_attempts == 3
    assert user.lock_until is not None


@pytest.mark.asyncio
async def test_expired_lock_cleared_on_next_attempt(client, registry, db):
    email, password, body = await register(client)
    await registry.delete(PrincipalKind.USER, body["data"]["id"])

    user = (await db.execute(select(User).where(User.email == email))).scalars().one()
    user.login_attempts = 3
    user.lock_until = datetime.now(timezone.utc) - timedelta(minutes=1)
    await db.commit()

    r = await user_login(client, email, password)
    assert r.status_code == 200

    await db.refresh(user)
    assert user.login_attempts == 0
    assert user.lock_until is None


@pytest.mark.asyncio
async def test_success_resets_attempts(client, registry, db):
    email, password, body = await register(client)
    await registry.delete(PrincipalKind.USER, body["data"]["id"])

    await user_login(client, email, "wrong-password")
    r = await user_login(client, email, password)
    assert r.status_code == 200

    user = (await db.execute(select(User).where(User.email == email))).scalars().one()
    assert user.login_attempts == 0


@pytest.mark.asyncio
async def test_login_is_case_insensitive_on_email(client, registry):
    email, password, body = await register(client)
    await registry.delete(PrincipalKind.USER, body["data"]["id"])
    r = await user_login(client, email.upper(), password)
    assert r.status_code == 200


# ═══════════════════════════════════════════════════════════
# Single session
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_second_login_conflicts(client):
    email, password, _ = await register(client)
    r = await user_login(client, email, password)
    assert r.status_code == 403
    assert r.json()["code"] == "session_conflict"
    assert r.json()["canForceLogin"] is True


@pytest.mark.asyncio
async def test_conflict_only_after_password_check(client):
    """A wrong password never reveals that someone is logged in."""
    email, _, _ = await register(client)
    r = await user_login(client, email, "wrong-password")
    assert r.status_code == 401
    assert r.json()["code"] == "invalid_credentials"


@pytest.mark.asyncio
async def test_force_login_invalidates_old_token(client, session_factory):
    email, password, first = await register(client)
    old_token = first["token"]

    r = await user_login(client, email, password, force=True)
    assert r.status_code == 200
    assert r.json()["forced"] is True
    new_token = r.json()["token"]

    old = await client.get("/api/v1/auth/me", headers=bearer(old_token))
    assert old.status_code == 401
    assert old.json()["code"] == "session_expired"

    new = await client.get("/api/v1/auth/me", headers=bearer(new_token))
    assert new.status_code == 200

    async with session_factory() as s:
        actions = (await s.execute(
            select(ActivityLog.action).where(ActivityLog.user_id == uuid.UUID(first["data"]["id"]))
        )).scalars().all()
    assert "force_login" in actions


@pytest.mark.asyncio
async def test_expired_session_record_rejects_valid_token(client, registry):
    _, _, body = await register(client)
    await registry.delete(PrincipalKind.USER, body["data"]["id"])

    r = await client.get("/api/v1/auth/me", headers=bearer(body["token"]))
    assert r.status_code == 401
    assert r.json()["code"] == "session_expired"


# ═══════════════════════════════════════════════════════════
# The gate
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_me_without_token(client):
    client.cookies.clear()
    r = await client.get("/api/v1/auth/me")
    assert r.status_code == 401
    assert r.json()["code"] == "unauthenticated"


@pytest.mark.asyncio
async def test_cookie_token_accepted(client):
    """Without a header the kind's cookie is used."""
    await register(client)
    r = await client.get("/api/v1/auth/me")
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_garbage_token_rejected(client):
    client.cookies.clear()
    r = await client.get("/api/v1/auth/me", headers=bearer("not.a.token"))
    assert r.status_code == 401
    assert r.json()["code"] == "unauthenticated"


@pytest.mark.asyncio
async def test_user_token_cannot_reach_admin_routes(client, rbac):
    _, _, body = await register(client)
    client.cookies.clear()
    r = await client.get("/api/v1/admin/auth/me", headers=bearer(body["token"]))
    assert r.status_code == 401
    assert r.json()["message"] == "Invalid token. Admin access required."


@pytest.mark.asyncio
async def test_deleted_user_token_rejected(client, db):
    _, _, body = await register(client)
    user = await db.get(User, uuid.UUID(body["data"]["id"]))
    await db.delete(user)
    await db.commit()

    r = await client.get("/api/v1/auth/me", headers=bearer(body["token"]))
    assert r.status_code == 401
    assert r.json()["code"] == "unauthenticated"


# ═══════════════════════════════════════════════════════════
# Logout
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_logout_drops_session_and_cookie(client, registry):
    _, _, body = await register(client)

    r = await client.post("/api/v1/auth/logout", headers=bearer(body["token"]))
    assert r.status_code == 200
    assert "token=loggedout" in r.headers["set-cookie"]
    assert "Max-Age=10" in r.headers["set-cookie"]
    assert await registry.get(PrincipalKind.USER, body["data"]["id"]) is None

    again = await client.get("/api/v1/auth/me", headers=bearer(body["token"]))
    assert again.status_code == 401


@pytest.mark.asyncio
async def test_logout_without_session_still_succeeds(client):
    client.cookies.clear()
    r = await client.post("/api/v1/auth/logout")
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_stale_token_logout_keeps_new_session(client, registry):
    email, password, first = await register(client)
    r = await user_login(client, email, password, force=True)
    new_token = r.json()["token"]

    await client.post("/api/v1/auth/logout", headers=bearer(first["token"]))

    me = await client.get("/api/v1/auth/me", headers=bearer(new_token))
    assert me.status_code == 200


# ═══════════════════════════════════════════════════════════
# Admins
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_admin_login_and_me(client, rbac):
    r = await client.post(
        "/api/v1/admin/auth/login", json={"email": ROOT_EMAIL, "password": ROOT_PASSWORD}
    )
    assert r.status_code == 200
    body = r.json()
    assert set(body) == {"status", "token", "forced", "data"}
    assert body["status"] == "success"
    assert body["data"]["email"] == ROOT_EMAIL
    token = body["token"]
    assert client.cookies.get("admin_token") == token

    r = await client.get("/api/v1/admin/auth/me", headers=bearer(token))
    assert r.status_code == 200
    me = r.json()
    assert me["email"] == ROOT_EMAIL
    assert me["role"]["name"] == "superadmin"
    assert "role:manage" in me["role"]["permissions"]


@pytest.mark.asyncio
async def test_admin_token_rejected_on_user_routes(client, rbac):
    token = await admin_login(client, ROOT_EMAIL, ROOT_PASSWORD)
    r = await client.get("/api/v1/auth/me", headers=bearer(token))
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_inactive_admin_cannot_log_in(client, rbac, db):
    role = await make_role(db, "viewer", ["admin:view"])
    admin = await make_admin(db, role, password="admin-password-123", is_active=False)

    r = await client.post(
        "/api/v1/admin/auth/login",
        json={"email": admin.email, "password": "admin-password-123"},
    )
    assert r.status_code == 401
    assert r.json()["code"] == "invalid_credentials"


@pytest.mark.asyncio
async def test_deactivated_admin_token_rejected(client, rbac, db):
    role = await make_role(db, "viewer", ["admin:view"])
    admin = await make_admin(db, role, password="admin-password-123")
    token = await admin_login(client, admin.email, "admin-password-123")

    row = await db.get(Admin, admin.id)
    row.is_active = False
    await db.commit()

    r = await client.get("/api/v1/admin/auth/me", headers=bearer(token))
    assert r.status_code == 401
    assert r.json()["code"] == "unauthenticated"


@pytest.mark.asyncio
async def test_admin_logout(client, rbac, registry):
    token = await admin_login(client, ROOT_EMAIL, ROOT_PASSWORD)
    r = await client.post("/api/v1/admin/auth/logout", headers=bearer(token))
    assert r.status_code == 200
    assert "admin_token=loggedout" in r.headers["set-cookie"]
    assert await registry.get(PrincipalKind.ADMIN, str(rbac["root"].id)) is None


@pytest.mark.asyncio
async def test_same_id_space_user_and_admin_sessions_independent(client, rbac, registry):
    """An admin session never satisfies the user-side check, and vice versa."""
    await admin_login(client, ROOT_EMAIL, ROOT_PASSWORD)
    root_id = str(rbac["root"].id)
    assert await registry.get(PrincipalKind.ADMIN, root_id) is not None
    assert await registry.get(PrincipalKind.USER, root_id) is None


# ═══════════════════════════════════════════════════════════
# Infrastructure failures
# ═══════════════════════════════════════════════════════════


class DownRegistry:
    async def get(self, kind, principal_id):
        raise InfrastructureError("session get failed: session store unreachable")

    async def set(self, kind, principal_id, record, ttl_seconds):
        raise InfrastructureError("session set failed: session store unreachable")

    async def delete(self, kind, principal_id):
        raise InfrastructureError("session delete failed: session store unreachable")


@pytest.mark.asyncio
async def test_registry_outage_is_503_not_401(client):
    from warden.main import app

    _, _, body = await register(client)
    app.state.registry = DownRegistry()

    r = await client.get("/api/v1/auth/me", headers=bearer(body["token"]))
    assert r.status_code == 503
    assert r.json()["status"] == "error"
    assert r.json()["retryable"] is True


@pytest.mark.asyncio
async def test_short_password_login_rejected_by_validation(client, db):
    """Never reaches the credential store, so no attempt is counted."""
    email, _, _ = await register(client)
    client.cookies.clear()
    r = await client.post("/api/v1/auth/login", json={"email": email, "password": "short"})
    assert r.status_code == 422

    user = (await db.execute(select(User).where(User.email == email))).scalars().one()
    assert user.login_attempts == 0
