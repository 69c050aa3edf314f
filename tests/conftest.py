"""Test fixtures — seeded stores, fake connections, isolated DB sessions.

Testing patterns:

1. Realtime core tests use MemoryMessageStore + FakeConnection, so the
   registry / lifecycle / dispatcher run exactly as in production with
   no sockets and no database.
2. SQL store + history API tests get a fresh in-memory SQLite database
   per test (aiosqlite + StaticPool, foreign keys enforced), with the
   app's get_db dependency overridden to use it.
3. WebSocket round trips use Starlette's TestClient against an app
   built with create_app(memory_store=...).
"""

import json

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from learnhub.db.engine import get_db
from learnhub.db.models import Base, Community, CommunityMember, User
from learnhub.main import create_app
from learnhub.realtime.connection import Connection
from learnhub.realtime.dispatcher import DispatcherConfig, FanoutDispatcher
from learnhub.realtime.lifecycle import ConnectionLifecycleManager
from learnhub.realtime.registry import ConnectionRegistry
from learnhub.store.memory import MemoryMessageStore

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


# ═══════════════════════════════════════════════════════════
# Realtime core
# ═══════════════════════════════════════════════════════════


class FakeConnection(Connection):
    """Connection that records frames instead of writing to a socket."""

    def __init__(self, identity=None, fail_writes=False):
        super().__init__(identity)
        self.sent: list[dict] = []
        self.fail_writes = fail_writes
        self.closed_with = None

    async def _write(self, text: str) -> None:
        if self.fail_writes:
            raise RuntimeError("socket is gone")
        self.sent.append(json.loads(text))

    async def close_transport(self, code: int, reason: str) -> None:
        self.closed_with = (code, reason)


@pytest.fixture
def make_connection():
    """Factory: make_connection("alice@example.com", fail_writes=False)."""
    return FakeConnection


@pytest.fixture
def memory_store():
    """Users alice, bob, carol, dave. C1 = {alice, bob}, C2 = {carol, dave}."""
    store = MemoryMessageStore()
    for name in ("alice", "bob", "carol", "dave"):
        store.add_user(name, f"{name}@example.com", name=name.title())
    store.add_community("C1", name="Python Study Group")
    store.add_member("C1", "alice")
    store.add_member("C1", "bob")
    store.add_community("C2", name="Rust Learners")
    store.add_member("C2", "carol")
    store.add_member("C2", "dave")
    return store


@pytest.fixture
def registry():
    return ConnectionRegistry()


@pytest.fixture
def lifecycle(registry):
    return ConnectionLifecycleManager(registry, close_superseded=True)


@pytest.fixture
def dispatcher(memory_store, registry, lifecycle):
    return FanoutDispatcher(
        store_scope=memory_store.scope,
        registry=registry,
        lifecycle=lifecycle,
        config=DispatcherConfig(persist_timeout=1.0, send_timeout=1.0),
    )


@pytest.fixture
def connect(lifecycle, make_connection):
    """Open a fake connection through the lifecycle manager."""

    async def _connect(identity=None, fail_writes=False):
        conn = make_connection(identity, fail_writes=fail_writes)
        await lifecycle.open(conn)
        return conn

    return _connect


# ═══════════════════════════════════════════════════════════
# SQL store
# ═══════════════════════════════════════════════════════════


@pytest_asyncio.fixture()
async def db_session():
    """Per-test session on a brand-new in-memory SQLite database."""
    engine = create_async_engine(
        TEST_DB_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_conn, _record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session = AsyncSession(bind=engine, expire_on_commit=False)
    try:
        yield session
    finally:
        await session.close()
        await engine.dispose()


@pytest_asyncio.fixture()
async def seeded_db(db_session):
    """Same cast as memory_store, as rows: ids u-alice … u-dave, C1, C2."""
    users = {
        name: User(id=f"u-{name}", email=f"{name}@example.com", name=name.title())
        for name in ("alice", "bob", "carol", "dave")
    }
    db_session.add_all(users.values())
    await db_session.flush()

    db_session.add_all([
        Community(id="C1", name="Python Study Group", category="programming",
                  created_by="u-alice"),
        Community(id="C2", name="Rust Learners", category="programming",
                  created_by="u-carol"),
    ])
    await db_session.flush()

    db_session.add_all([
        CommunityMember(community_id="C1", user_id="u-alice"),
        CommunityMember(community_id="C1", user_id="u-bob"),
        CommunityMember(community_id="C2", user_id="u-carol"),
        CommunityMember(community_id="C2", user_id="u-dave"),
    ])
    await db_session.commit()
    return db_session


# ═══════════════════════════════════════════════════════════
# HTTP
# ═══════════════════════════════════════════════════════════


@pytest.fixture
def app():
    return create_app()


@pytest_asyncio.fixture()
async def client(app, seeded_db):
    """HTTP client authenticated as u-alice, backed by the seeded SQLite DB.

    get_current_user is overridden so protected routes work without
    minting real tokens.
    """
    from learnhub.auth.dependencies import CurrentIdentity, get_current_user

    async def override_get_db():
        yield seeded_db

    def override_get_current_user():
        return CurrentIdentity(user_id="u-alice", email="alice@example.com")

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def unauthenticated_client(app, seeded_db):
    """HTTP client WITHOUT auth override — for testing real JWT flows."""

    async def override_get_db():
        yield seeded_db

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
