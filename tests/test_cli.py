"""CLI and bootstrap tests."""

import pytest
from click.testing import CliRunner
from sqlalchemy import func, select

from warden.cli.main import main
from warden.db.models import Admin, Permission, Role
from warden.rbac.catalog import DEFAULT_PERMISSIONS
from warden.services.bootstrap import bootstrap


def test_generate_secret():
    result = CliRunner().invoke(main, ["generate-secret"])
    assert result.exit_code == 0
    secret = result.output.strip()
    assert len(secret) == 128
    int(secret, 16)


def test_bootstrap_rejects_short_password():
    result = CliRunner().invoke(
        main, ["bootstrap", "--email", "root@example.com", "--password", "short"]
    )
    assert result.exit_code == 1


def test_bootstrap_command_creates_tables_and_root(tmp_path):
    url = f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"
    args = [
        "bootstrap",
        "--email", "Root@Example.com",
        "--password", "root-password-123",
        "--database-url", url,
        "--create-tables",
    ]
    first = CliRunner().invoke(main, args)
    assert first.exit_code == 0, first.output
    assert "Superadmin created: root@example.com" in first.output

    second = CliRunner().invoke(main, args)
    assert second.exit_code == 0, second.output
    assert "already exists" in second.output


@pytest.mark.asyncio
async def test_bootstrap_is_idempotent(db):
    first = await bootstrap(db, "root@example.com", "root-password-123")
    assert first.role_created and first.admin_created
    assert len(first.permissions_created) == len(DEFAULT_PERMISSIONS)

    second = await bootstrap(db, "root@example.com", "other-password-456")
    assert not second.role_created
    assert not second.admin_created
    assert second.permissions_created == []

    assert (await db.execute(select(func.count(Admin.id)))).scalar_one() == 1
    assert (await db.execute(select(func.count(Permission.id)))).scalar_one() == len(DEFAULT_PERMISSIONS)

    role = (await db.execute(select(Role).where(Role.name == "superadmin"))).scalars().one()
    assert role.is_system_role
    assert len(role.permissions) == len(DEFAULT_PERMISSIONS)
