"""Warden CLI: operator commands.

Usage:
    warden generate-secret                                   # Print a signing secret
    warden bootstrap --email root@example.com --password ... # Seed RBAC + first superadmin
    warden serve                                             # Run the API with uvicorn
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import secrets
import sys
from typing import Optional

import click

from warden import __version__
from warden.config import settings

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from synchronous Click handler.

    Handles nested event loops (e.g. when invoked via Click CliRunner
    inside an existing async context like tests) by offloading to a thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="warden")
def main():
    """Warden administration commands."""


# ---------------------------------------------------------------------------
# warden generate-secret
# ---------------------------------------------------------------------------


@main.command("generate-secret")
@click.option("--bytes", "n_bytes", default=64, show_default=True, help="Secret length in bytes")
def generate_secret(n_bytes: int):
    """Print a random hex secret for WARDEN_JWT_SECRET.

    Rotating the secret logs everyone out: outstanding tokens stop verifying.
    """
    click.echo(secrets.token_hex(n_bytes))


# ---------------------------------------------------------------------------
# warden bootstrap
# ---------------------------------------------------------------------------


@main.command()
@click.option("--email", required=True, help="Email of the first superadmin")
@click.option("--password", required=True, help="Password of the first superadmin")
@click.option("--first-name", default="Super", show_default=True)
@click.option("--last-name", default="Admin", show_default=True)
@click.option("--database-url", help="Override WARDEN_DATABASE_URL")
@click.option("--create-tables", is_flag=True, help="Create missing tables first (no migrations)")
def bootstrap(email: str, password: str, first_name: str, last_name: str,
              database_url: Optional[str], create_tables: bool):
    """Seed the permission catalog, the superadmin role, and a first superadmin.

    Safe to run more than once.
    """
    if len(password) < 8:
        click.secho("Error: password must be at least 8 characters", fg="red", err=True)
        sys.exit(1)
    result = _run(_bootstrap_impl(
        database_url or settings.database_url,
        email, password, first_name, last_name, create_tables,
    ))

    if result.permissions_created:
        click.echo(f"Permissions created: {', '.join(result.permissions_created)}")
    else:
        click.echo("Permissions: catalog already present")
    click.echo("Superadmin role: " + ("created" if result.role_created else "already present"))
    if result.admin_created:
        click.secho(f"Superadmin created: {result.admin_email}", fg="green")
    else:
        click.secho(f"Admin {result.admin_email} already exists (password unchanged)", fg="yellow")


async def _bootstrap_impl(database_url: str, email: str, password: str,
                          first_name: str, last_name: str, create_tables: bool):
    from warden.db.engine import build_engine, build_session_factory
    from warden.db.models import Base
    from warden.services.bootstrap import bootstrap as run_bootstrap

    engine = build_engine(database_url)
    try:
        if create_tables:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        factory = build_session_factory(engine)
        async with factory() as db:
            return await run_bootstrap(
                db, email, password, first_name=first_name, last_name=last_name
            )
    finally:
        await engine.dispose()


# ---------------------------------------------------------------------------
# warden serve
# ---------------------------------------------------------------------------


@main.command()
@click.option("--host", default=None, help="Bind address (default: WARDEN_HOST)")
@click.option("--port", default=None, type=int, help="Port (default: WARDEN_PORT)")
@click.option("--reload", is_flag=True, help="Auto-reload on code changes")
def serve(host: Optional[str], port: Optional[int], reload: bool):
    """Run the API server."""
    import uvicorn

    uvicorn.run(
        "warden.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
    )


if __name__ == "__main__":
    main()
