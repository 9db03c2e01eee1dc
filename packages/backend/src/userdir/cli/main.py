"""userdir CLI — talk to a running user directory, or maintain its database.

Usage:
    userdir login root --password 123456        # Print a bearer token
    userdir users                                # List users (admin token)
    userdir create-user --username alice ...     # Sign up / create a user
    userdir delete-user 7                        # Delete a user
    userdir seed                                 # Create missing roles + first admin
    userdir reconcile --all                      # Repair users left without roles
                                                 # and orphaned role assignments

login, users, create-user and delete-user go through the HTTP API.
seed and reconcile connect to the database directly (USERDIR_DATABASE_URL).
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import os
import sys
from typing import Optional

import click
import httpx

from userdir import __version__

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:8000"


def _api_url() -> str:
    return os.environ.get("USERDIR_API_URL", DEFAULT_API_URL).rstrip("/")


def _client(token: Optional[str] = None) -> httpx.AsyncClient:
    """Build an async HTTP client pointed at the user directory API."""
    headers = {"Authorization": f"Bearer {token}"} if token else {}
    return httpx.AsyncClient(base_url=_api_url(), headers=headers, timeout=30.0)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from a synchronous Click handler.

    Inside an already running loop (e.g. CliRunner in async tests) the
    coroutine is offloaded to a thread with its own loop.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _token_from_ctx(token: Optional[str], required: bool = True) -> Optional[str]:
    """Resolve the bearer token from --token or the USERDIR_TOKEN env var."""
    tok = token or os.environ.get("USERDIR_TOKEN")
    if not tok and required:
        click.secho(
            "Error: --token required (or set USERDIR_TOKEN env var)",
            fg="red",
            err=True,
        )
        sys.exit(1)
    return tok


def _pretty_json(data: dict | list) -> str:
    return json.dumps(data, indent=2, default=str)


def _check(r: httpx.Response) -> None:
    """Exit with the API's error detail on a non-2xx response."""
    if r.is_success:
        return
    try:
        detail = r.json().get("detail", r.text)
    except ValueError:
        detail = r.text
    click.secho(f"Error {r.status_code}: {detail}", fg="red", err=True)
    sys.exit(1)


def _print_table(rows: list[dict], columns: list[tuple[str, str, int]]):
    """Print a simple ASCII table.

    columns: list of (header, dict_key, width)
    """
    header = "  ".join(h.ljust(w) for h, _, w in columns)
    click.secho(header, bold=True)
    click.echo("-" * len(header))
    for row in rows:
        line = "  ".join(str(row.get(k, "—"))[:w].ljust(w) for _, k, w in columns)
        click.echo(line)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="userdir")
def main():
    """userdir — user directory with token auth and role-based access."""


# ---------------------------------------------------------------------------
# API commands
# ---------------------------------------------------------------------------


@main.command()
@click.argument("username")
@click.option("--password", prompt=True, hide_input=True)
@click.option("--json", "as_json", is_flag=True, help="Print the full login response")
def login(username: str, password: str, as_json: bool):
    """Log in and print a bearer token."""
    _run(_login_impl(username, password, as_json))


async def _login_impl(username: str, password: str, as_json: bool):
    async with _client() as c:
        r = await c.post("/login", json={"username": username, "password": password})
        _check(r)
        data = r.json()
    if as_json:
        click.echo(_pretty_json(data))
    else:
        click.echo(data["token"])


@main.command()
@click.option("--token", help="Bearer token (or set USERDIR_TOKEN)")
def users(token: Optional[str]):
    """List all users (administrators only)."""
    _run(_users_impl(_token_from_ctx(token)))


async def _users_impl(token: str):
    async with _client(token) as c:
        r = await c.get("/users")
        _check(r)
        rows = r.json()

    if not rows:
        click.echo("No users found.")
        return
    _print_table(
        rows,
        [("ID", "id", 6), ("USERNAME", "username", 20),
         ("SURNAME", "surname", 20), ("LASTNAME", "lastname", 20)],
    )


@main.command("create-user")
@click.option("--username", required=True)
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True)
@click.option("--surname", required=True)
@click.option("--lastname", default="")
@click.option("--role", "roles", multiple=True, help='Role name, e.g. "Guest" (repeatable)')
@click.option("--token", help="Bearer token; omit to sign up anonymously")
def create_user(username: str, password: str, surname: str, lastname: str,
                roles: tuple[str, ...], token: Optional[str]):
    """Create a user. Without a token this is a public sign-up."""
    body: dict = {
        "username": username,
        "password": password,
        "surname": surname,
        "lastname": lastname,
    }
    if roles:
        body["roles"] = list(roles)
    _run(_create_user_impl(body, _token_from_ctx(token, required=False)))


async def _create_user_impl(body: dict, token: Optional[str]):
    async with _client(token) as c:
        r = await c.post("/users", json=body)
        _check(r)
        user = r.json()
    click.secho(f"Created user #{user['id']} ({user['username']})", fg="green")


@main.command("delete-user")
@click.argument("user_id", type=int)
@click.option("--token", help="Bearer token (or set USERDIR_TOKEN)")
def delete_user(user_id: int, token: Optional[str]):
    """Delete a user and its role assignments."""
    _run(_delete_user_impl(user_id, _token_from_ctx(token)))


async def _delete_user_impl(user_id: int, token: str):
    async with _client(token) as c:
        r = await c.delete(f"/users/{user_id}")
        _check(r)
    click.secho(f"Deleted user #{user_id}", fg="green")


# ---------------------------------------------------------------------------
# Database maintenance commands
# ---------------------------------------------------------------------------


@main.command()
def seed():
    """Create missing roles and, on an empty database, the first administrator."""
    _run(_seed_impl())


async def _seed_impl():
    from userdir.db.engine import engine
    from userdir.main import run_seed

    try:
        await run_seed()
    finally:
        await engine.dispose()
    click.secho("Seeding done.", fg="green")


@main.command()
@click.argument("user_id", type=int, required=False)
@click.option("--all", "all_", is_flag=True, help="Repair every inconsistency found")
def reconcile(user_id: Optional[int], all_: bool):
    """Repair rows left behind by partially failed writes.

    A user without role assignments gets the Guest role; assignments
    whose user no longer exists are removed.
    """
    if user_id is None and not all_:
        click.secho("Error: give a USER_ID or --all", fg="red", err=True)
        sys.exit(1)
    _run(_reconcile_impl(user_id, all_))


async def _reconcile_impl(user_id: Optional[int], all_: bool):
    from userdir.db.engine import async_session_factory, engine
    from userdir.errors import UserDirectoryError
    from userdir.repositories.roles import RoleRepository
    from userdir.repositories.user_roles import UserRoleRepository
    from userdir.repositories.users import UserRepository
    from userdir.services.user_aggregate import UserAggregate

    try:
        async with async_session_factory() as db:
            aggregate = UserAggregate(
                users=UserRepository(db),
                roles=RoleRepository(db),
                user_roles=UserRoleRepository(db),
            )
            if all_:
                ids = (await aggregate.find_inconsistencies()).user_ids
            else:
                ids = [user_id]

            if not ids:
                click.secho("Nothing to reconcile.", fg="green")
                return

            for uid in ids:
                try:
                    result = await aggregate.reconcile(uid)
                except UserDirectoryError as e:
                    click.secho(f"  #{uid}: {e.message}", fg="red")
                    continue
                click.echo(f"  #{uid}: {result.action.value}")
    finally:
        await engine.dispose()


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    main()
