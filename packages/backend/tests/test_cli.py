"""CLI tests — API commands against a mocked HTTP transport."""

import json

import httpx
import pytest
from click.testing import CliRunner

from userdir.cli import main as cli


@pytest.fixture()
def api(monkeypatch):
    """Route the CLI's HTTP client to a handler; return the captured requests."""
    seen: list[httpx.Request] = []
    responses: dict[tuple[str, str], httpx.Response] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return responses.get(
            (request.method, request.url.path), httpx.Response(404, json={"detail": "Not Found"})
        )

    def fake_client(token=None):
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        return httpx.AsyncClient(
            base_url="http://test",
            headers=headers,
            transport=httpx.MockTransport(handler),
        )

    monkeypatch.setattr(cli, "_client", fake_client)
    monkeypatch.delenv("USERDIR_TOKEN", raising=False)
    return seen, responses


def test_login_prints_token(api):
    seen, responses = api
    responses[("POST", "/login")] = httpx.Response(
        200, json={"type": "Bearer", "token": "abc.def.ghi", "expiration": 1}
    )

    result = CliRunner().invoke(cli.main, ["login", "root", "--password", "123456"])

    assert result.exit_code == 0, result.output
    assert result.output.strip() == "abc.def.ghi"
    assert json.loads(seen[0].content) == {"username": "root", "password": "123456"}


def test_login_failure_exits_with_detail(api):
    _, responses = api
    responses[("POST", "/login")] = httpx.Response(401, json={"detail": "Invalid credentials"})

    result = CliRunner().invoke(cli.main, ["login", "root", "--password", "nope"])

    assert result.exit_code == 1
    assert "Invalid credentials" in result.output


def test_users_requires_token(api):
    result = CliRunner().invoke(cli.main, ["users"])
    assert result.exit_code == 1
    assert "--token required" in result.output


def test_users_prints_table(api):
    seen, responses = api
    responses[("GET", "/users")] = httpx.Response(
        200,
        json=[{"id": 1, "surname": "Root", "lastname": "the First", "username": "root"}],
    )

    result = CliRunner().invoke(cli.main, ["users", "--token", "tok"])

    assert result.exit_code == 0, result.output
    assert "USERNAME" in result.output
    assert "root" in result.output
    assert seen[0].headers["Authorization"] == "Bearer tok"


def test_create_user_sends_roles(api):
    seen, responses = api
    responses[("POST", "/users")] = httpx.Response(
        201, json={"id": 2, "surname": "Alice", "lastname": "", "username": "alice"}
    )

    result = CliRunner().invoke(
        cli.main,
        ["create-user", "--username", "alice", "--surname", "Alice",
         "--password", "p@ss", "--role", "Guest"],
    )

    assert result.exit_code == 0, result.output
    assert "Created user #2" in result.output
    body = json.loads(seen[0].content)
    assert body["roles"] == ["Guest"]
    assert "Authorization" not in seen[0].headers


def test_reconcile_needs_target():
    result = CliRunner().invoke(cli.main, ["reconcile"])
    assert result.exit_code == 1
    assert "USER_ID or --all" in result.output
