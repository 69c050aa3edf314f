"""History API tests — community and direct history, members, auth."""

from datetime import datetime, timedelta, timezone

from learnhub.auth.jwt import create_access_token
from learnhub.db.models import Message

T0 = datetime(2026, 1, 1, 9, 0, tzinfo=timezone.utc)


async def seed_messages(db, n, **fields):
    db.add_all([
        Message(content=f"m{i}", created_at=T0 + timedelta(minutes=i), **fields)
        for i in range(n)
    ])
    await db.commit()


async def test_community_history(client, seeded_db):
    await seed_messages(seeded_db, 3, author_id="u-bob", community_id="C1", type="community")

    r = await client.get("/api/v1/communities/C1/messages")
    assert r.status_code == 200
    data = r.json()
    assert [m["content"] for m in data] == ["m0", "m1", "m2"]

    first = data[0]
    assert first["authorId"] == "u-bob"
    assert first["communityId"] == "C1"
    assert first["recipientId"] is None
    assert first["type"] == "community"
    assert first["author"]["name"] == "Bob"
    assert "createdAt" in first


async def test_community_history_limit(client, seeded_db):
    await seed_messages(seeded_db, 5, author_id="u-bob", community_id="C1", type="community")

    r = await client.get("/api/v1/communities/C1/messages", params={"limit": 2})
    assert [m["content"] for m in r.json()] == ["m3", "m4"]


async def test_history_limit_is_bounded(client):
    r = await client.get("/api/v1/communities/C1/messages", params={"limit": 0})
    assert r.status_code == 422
    r = await client.get("/api/v1/communities/C1/messages", params={"limit": 10_000})
    assert r.status_code == 422


async def test_empty_and_unknown_community(client):
    r = await client.get("/api/v1/communities/C2/messages")
    assert r.status_code == 200
    assert r.json() == []

    r = await client.get("/api/v1/communities/nope/messages")
    assert r.status_code == 404


async def test_direct_history_for_current_user(client, seeded_db):
    await seed_messages(seeded_db, 2, author_id="u-alice", recipient_id="u-bob", type="direct")
    await seed_messages(seeded_db, 1, author_id="u-carol", recipient_id="u-bob", type="direct")

    r = await client.get("/api/v1/messages/u-bob")
    assert r.status_code == 200
    data = r.json()
    assert len(data) == 2
    assert all(m["authorId"] == "u-alice" for m in data)
    assert all(m["type"] == "direct" for m in data)

    r = await client.get("/api/v1/messages/u-carol")
    assert r.json() == []


async def test_direct_history_unknown_user(client):
    r = await client.get("/api/v1/messages/ghost")
    assert r.status_code == 404


async def test_community_members(client):
    r = await client.get("/api/v1/communities/C1/members")
    assert r.status_code == 200
    assert sorted(u["email"] for u in r.json()) == ["alice@example.com", "bob@example.com"]

    r = await client.get("/api/v1/communities/nope/members")
    assert r.status_code == 404


# ─── Auth ───────────────────────────────────────────────


async def test_history_requires_auth(unauthenticated_client):
    r = await unauthenticated_client.get("/api/v1/communities/C1/messages")
    assert r.status_code == 401
    assert r.headers["www-authenticate"] == "Bearer"


async def test_history_rejects_bad_token(unauthenticated_client):
    r = await unauthenticated_client.get(
        "/api/v1/messages/u-bob",
        headers={"Authorization": "Bearer not-a-jwt"},
    )
    assert r.status_code == 401


async def test_history_with_real_token(unauthenticated_client, seeded_db):
    await seed_messages(seeded_db, 1, author_id="u-bob", recipient_id="u-carol", type="direct")
    token = create_access_token("u-carol", email="carol@example.com")

    r = await unauthenticated_client.get(
        "/api/v1/messages/u-bob",
        headers={"Authorization": f"Bearer {token}"},
    )
    assert r.status_code == 200
    assert [m["content"] for m in r.json()] == ["m0"]
