"""Health endpoint tests."""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from learnhub.main import create_app


@pytest_asyncio.fixture()
async def memory_client(memory_store):
    app = create_app(memory_store=memory_store)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.mark.asyncio
async def test_health_returns_ok(memory_client):
    """Health endpoint should return server status and version."""
    resp = await memory_client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["server"] == "ok"
    assert "version" in data
    assert data["status"] in ("healthy", "degraded")


@pytest.mark.asyncio
async def test_health_skips_postgres_for_memory_store(memory_client):
    data = (await memory_client.get("/api/v1/health")).json()
    assert "postgres" not in data
    assert "redis" in data


@pytest.mark.asyncio
async def test_health_reports_realtime_stats(memory_client):
    data = (await memory_client.get("/api/v1/health")).json()
    realtime = data["realtime"]
    assert realtime["connections"] == 0
    assert realtime["registered_identities"] == 0
    assert realtime["dispatcher"]["received"] == 0
    assert realtime["dispatcher"]["active_conversations"] == 0


@pytest.mark.asyncio
async def test_health_is_not_rate_limited_or_authenticated(memory_client):
    resp = await memory_client.get("/api/v1/health", headers={"Authorization": "Bearer junk"})
    assert resp.status_code == 200
    assert "X-RateLimit-Limit" not in resp.headers
