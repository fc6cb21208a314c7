"""Test fixtures: a throwaway SQLite database and in-memory sessions per test.

Learn: Testing pattern for async SQLAlchemy + FastAPI without services:

1. Each test gets its own SQLite file (tmp_path) through aiosqlite, with
   the schema created from the models. A file rather than :memory: so
   the audit logger's separate session sees the same database.
2. The session registry is the in-memory implementation, so no Redis.
3. httpx's ASGITransport does not run the lifespan, so the fixtures
   wire app.state by hand: session factory, registry, issuer, audit.

bcrypt is turned down to its minimum cost; hashing at 12 rounds would
dominate the suite's runtime.
"""

import uuid
from typing import Iterable, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from warden.audit.logger import ActivityLogger
from warden.auth.jwt import TokenIssuer
from warden.auth.password import hash_password
from warden.db.engine import build_engine, build_session_factory
from warden.db.models import Admin, Base, Permission, Role
from warden.main import app
from warden.services.bootstrap import bootstrap
from warden.sessions.registry import InMemorySessionRegistry

TEST_SECRET = "test-secret-not-for-production"

ROOT_EMAIL = "root@example.com"
ROOT_PASSWORD = "root-password-123"


@pytest.fixture(autouse=True)
def fast_bcrypt(monkeypatch):
    monkeypatch.setattr("warden.auth.password.BCRYPT_ROUNDS", 4)


@pytest_asyncio.fixture()
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'warden.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return build_session_factory(engine)


@pytest_asyncio.fixture()
async def db(session_factory):
    """Direct session for seeding and asserting on rows."""
    async with session_factory() as session:
        yield session


@pytest.fixture()
def registry():
    return InMemorySessionRegistry()


@pytest.fixture()
def issuer():
    return TokenIssuer(TEST_SECRET, expire_minutes=60)


@pytest_asyncio.fixture()
async def client(session_factory, registry, issuer):
    """HTTP client against the real app with test handles on app.state."""
    app.state.session_factory = session_factory
    app.state.registry = registry
    app.state.issuer = issuer
    app.state.activity_logger = ActivityLogger(session_factory)
    app.state.redis = None

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ═══════════════════════════════════════════════════════════
# Seed data
# ═══════════════════════════════════════════════════════════


@pytest_asyncio.fixture()
async def rbac(db):
    """Default permission catalog + superadmin role + root superadmin."""
    await bootstrap(db, ROOT_EMAIL, ROOT_PASSWORD, first_name="Root", last_name="Admin")
    role = (await db.execute(select(Role).where(Role.name == "superadmin"))).scalars().one()
    root = (await db.execute(select(Admin).where(Admin.email == ROOT_EMAIL))).scalars().one()
    return {"superadmin_role": role, "root": root}


async def make_role(
    db,
    name: str,
    codes: Iterable[str] = (),
    is_system_role: bool = False,
) -> Role:
    codes = list(codes)
    permissions = []
    if codes:
        result = await db.execute(select(Permission).where(Permission.code.in_(codes)))
        permissions = list(result.scalars().all())
    role = Role(name=name, is_system_role=is_system_role)
    role.permissions = permissions
    db.add(role)
    await db.commit()
    return role


async def make_admin(
    db,
    role: Role,
    email: Optional[str] = None,
    password: str = "admin-password-123",
    is_active: bool = True,
) -> Admin:
    admin = Admin(
        first_name="Test",
        last_name="Admin",
        email=email or f"admin-{uuid.uuid4().hex[:8]}@example.com",
        password_hash=hash_password(password),
        role=role,
        is_active=is_active,
    )
    db.add(admin)
    await db.commit()
    return admin


async def admin_login(client, email: str, password: str, force: bool = False) -> str:
    r = await client.post(
        "/api/v1/admin/auth/login",
        json={"email": email, "password": password, "forceLogin": force},
    )
    assert r.status_code == 200, r.text
    return r.json()["token"]


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture()
async def root_token(client, rbac):
    return await admin_login(client, ROOT_EMAIL, ROOT_PASSWORD)
