"""LearnHub CLI — run the chat server, mint dev tokens, read history.

Usage:
    learnhub serve                               # Run the API + WebSocket server
    learnhub token <user-id> --email a@x.io      # Mint an access token
    learnhub history --community <id>            # Community chat history
    learnhub history --user <id>                 # Direct messages with a user
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

from learnhub import __version__

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:8000"


def _api_url() -> str:
    return os.environ.get("LEARNHUB_API_URL", DEFAULT_API_URL).rstrip("/")


def _client(token: Optional[str]) -> httpx.AsyncClient:
    """Build an async HTTP client pointed at the LearnHub backend."""
    headers = {"Authorization": f"Bearer {token}"} if token else {}
    return httpx.AsyncClient(base_url=_api_url(), headers=headers, timeout=30.0)


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


def _token_from_ctx(token: Optional[str]) -> str:
    """Resolve the access token from flag or LEARNHUB_TOKEN env var."""
    tok = token or os.environ.get("LEARNHUB_TOKEN")
    if not tok:
        click.secho(
            "Error: --token required (or set LEARNHUB_TOKEN env var)",
            fg="red",
            err=True,
        )
        sys.exit(1)
    return tok


def _pretty_json(data: dict | list) -> str:
    return json.dumps(data, indent=2, default=str)


def format_message(message: dict) -> str:
    """One history line: timestamp, author, content."""
    author = (message.get("author") or {}).get("name") or message.get("authorId", "?")
    stamp = str(message.get("createdAt", ""))[:19].replace("T", " ")
    return f"{stamp}  {author}: {message.get('content', '')}"


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="learnhub")
def main():
    """LearnHub — real-time community and direct-message chat backend."""


# ---------------------------------------------------------------------------
# learnhub serve
# ---------------------------------------------------------------------------


@main.command()
@click.option("--host", default=None, help="Bind address (default: LEARNHUB_HOST)")
@click.option("--port", default=None, type=int, help="Port (default: LEARNHUB_PORT)")
@click.option("--reload", is_flag=True, help="Auto-reload on code changes")
def serve(host: Optional[str], port: Optional[int], reload: bool):
    """Run the HTTP API and chat WebSocket."""
    import uvicorn

    from learnhub.config import settings

    uvicorn.run(
        "learnhub.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
    )


# ---------------------------------------------------------------------------
# learnhub token
# ---------------------------------------------------------------------------


@main.command()
@click.argument("user_id")
@click.option("--email", "-e", help="Email claim (the default chat identity)")
@click.option("--minutes", "-m", type=int, default=None, help="Lifetime in minutes")
def token(user_id: str, email: Optional[str], minutes: Optional[int]):
    """Mint an access token for USER_ID (signed with LEARNHUB_JWT_SECRET)."""
    from learnhub.auth.jwt import create_access_token

    click.echo(create_access_token(user_id, email=email, expires_minutes=minutes))


# ---------------------------------------------------------------------------
# learnhub history
# ---------------------------------------------------------------------------


@main.command()
@click.option("--community", "-c", "community_id", help="Community ID")
@click.option("--user", "-u", "user_id", help="Other user's ID (direct messages)")
@click.option("--limit", "-l", default=50, help="Max messages")
@click.option("--token", "-t", help="Access token (or set LEARNHUB_TOKEN)")
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON")
def history(community_id: Optional[str], user_id: Optional[str], limit: int,
            token: Optional[str], as_json: bool):
    """Show chat history for a community or a direct conversation."""
    if bool(community_id) == bool(user_id):
        raise click.UsageError("Pass exactly one of --community or --user")
    _run(_history_impl(community_id, user_id, limit, _token_from_ctx(token), as_json))


async def _history_impl(community_id: Optional[str], user_id: Optional[str],
                        limit: int, token: str, as_json: bool):
    path = (
        f"/api/v1/communities/{community_id}/messages"
        if community_id
        else f"/api/v1/messages/{user_id}"
    )

    async with _client(token) as c:
        r = await c.get(path, params={"limit": limit})
        if r.status_code == 404:
            click.secho("Not found.", fg="red", err=True)
            sys.exit(1)
        r.raise_for_status()
        messages = r.json()

    if as_json:
        click.echo(_pretty_json(messages))
        return

    if not messages:
        click.echo("No messages yet.")
        return

    for message in messages:
        click.echo(format_message(message))


if __name__ == "__main__":
    main()
