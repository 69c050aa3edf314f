"""CLI tests — click's CliRunner, HTTP calls served by httpx.MockTransport."""

import json

import httpx
import pytest
from click.testing import CliRunner

from learnhub.auth.jwt import verify_token
from learnhub.cli import main as cli

MESSAGES = [
    {
        "id": "m1",
        "content": "hello",
        "authorId": "u-alice",
        "communityId": "C1",
        "recipientId": None,
        "type": "community",
        "createdAt": "2026-01-01T09:00:00Z",
        "author": {"id": "u-alice", "email": "alice@example.com", "name": "Alice"},
    },
]


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def api(monkeypatch):
    """Route the CLI's HTTP client to an in-process handler; records requests."""
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path.endswith("/nope/messages"):
            return httpx.Response(404, json={"detail": "Community not found"})
        return httpx.Response(200, json=MESSAGES)

    def fake_client(token):
        return httpx.AsyncClient(
            transport=httpx.MockTransport(handler),
            base_url="http://test",
            headers={"Authorization": f"Bearer {token}"},
        )

    monkeypatch.setattr(cli, "_client", fake_client)
    return seen


def test_token_mints_verifiable_jwt(runner):
    result = runner.invoke(cli.main, ["token", "u-alice", "--email", "alice@example.com"])
    assert result.exit_code == 0

    payload = verify_token(result.output.strip())
    assert payload["sub"] == "u-alice"
    assert payload["email"] == "alice@example.com"


def test_history_needs_exactly_one_target(runner):
    result = runner.invoke(cli.main, ["history", "--token", "t"])
    assert result.exit_code == 2
    assert "exactly one" in result.output

    result = runner.invoke(cli.main, ["history", "-c", "C1", "-u", "u-bob", "--token", "t"])
    assert result.exit_code == 2


def test_history_needs_token(runner, monkeypatch):
    monkeypatch.delenv("LEARNHUB_TOKEN", raising=False)
    result = runner.invoke(cli.main, ["history", "-c", "C1"])
    assert result.exit_code == 1


def test_community_history(runner, api):
    result = runner.invoke(cli.main, ["history", "-c", "C1", "-l", "5", "--token", "tok"])

    assert result.exit_code == 0
    assert "2026-01-01 09:00:00  Alice: hello" in result.output
    assert api[0].url.path == "/api/v1/communities/C1/messages"
    assert api[0].url.params["limit"] == "5"
    assert api[0].headers["Authorization"] == "Bearer tok"


def test_direct_history_json(runner, api, monkeypatch):
    monkeypatch.setenv("LEARNHUB_TOKEN", "env-token")
    result = runner.invoke(cli.main, ["history", "-u", "u-bob", "--json"])

    assert result.exit_code == 0
    assert json.loads(result.output) == MESSAGES
    assert api[0].url.path == "/api/v1/messages/u-bob"


def test_history_not_found(runner, api):
    result = runner.invoke(cli.main, ["history", "-c", "nope", "--token", "tok"])
    assert result.exit_code == 1


def test_format_message_without_author():
    line = cli.format_message({"authorId": "u-x", "content": "hi", "createdAt": "2026-01-01T09:00:00"})
    assert line == "2026-01-01 09:00:00  u-x: hi"
