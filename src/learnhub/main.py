"""FastAPI application factory.

App factory pattern — create_app() returns a configured FastAPI
instance with its own chat runtime (registry, lifecycle manager,
dispatcher) on app.state.chat. Lifespan manages startup/shutdown
(logging, Redis, closing live sockets, disposing the engine).
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from learnhub import __version__
from learnhub.api import api_router
from learnhub.config import settings
from learnhub.logs import configure_logging
from learnhub.realtime.runtime import build_chat_runtime
from learnhub.store.memory import MemoryMessageStore

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Anything before `yield` runs at startup, after `yield` runs at shutdown.
    """
    configure_logging(settings)
    logger.info(
        "learnhub.starting",
        version=__version__,
        environment=settings.environment,
        storage=settings.storage_backend,
        port=settings.port,
    )

    from learnhub.db.redis import close_redis, init_redis
    try:
        await init_redis()
        logger.info("learnhub.redis_connected", url=settings.redis_url)
    except Exception as e:
        logger.warning("learnhub.redis_unavailable", error=str(e))
        # Redis is optional: only rate limiting depends on it

    yield

    # Shutdown
    closed = await app.state.chat.lifecycle.close_all()
    logger.info(
        "learnhub.shutdown",
        closed_connections=closed,
        **app.state.chat.dispatcher.get_stats(),
    )

    await close_redis()

    from learnhub.db.engine import engine
    await engine.dispose()


def create_app(memory_store: Optional[MemoryMessageStore] = None) -> FastAPI:
    """Build and return the FastAPI application.

    Pass `memory_store` to run against an in-memory store regardless of
    LEARNHUB_STORAGE_BACKEND (tests, demos).
    """
    app = FastAPI(
        title="LearnHub Chat",
        description="Real-time community and direct-message delivery for LearnHub",
        version=__version__,
        lifespan=lifespan,
    )

    # ── Chat runtime ──────────────────────────────────────────
    if memory_store is None and settings.storage_backend == "memory":
        memory_store = MemoryMessageStore()

    if memory_store is not None:
        store_scope = memory_store.scope
    else:
        from learnhub.db.engine import async_session_factory
        from learnhub.store.sql import sql_store_scope

        store_scope = sql_store_scope(async_session_factory)

    app.state.memory_store = memory_store
    app.state.chat = build_chat_runtime(settings, store_scope)

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: CORS → RateLimit → Security → RequestId → handler

    from learnhub.middleware.rate_limit import RateLimitMiddleware
    from learnhub.middleware.request_id import RequestIdMiddleware
    from learnhub.middleware.security import SecurityHeadersMiddleware

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RateLimitMiddleware, rpm=settings.rate_limit_rpm)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Mount API routes
    app.include_router(api_router)

    # Mount the chat WebSocket
    from learnhub.realtime.websocket import router as ws_router
    app.include_router(ws_router)

    return app


# Default app instance (used by uvicorn: learnhub.main:app)
app = create_app()
