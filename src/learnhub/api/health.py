"""Health check endpoint.

Verifies the server is running, reports whether dependencies
(Postgres, Redis) are reachable, and includes live chat statistics.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text

from learnhub import __version__
from learnhub.config import settings
from learnhub.db.engine import engine
from learnhub.realtime.runtime import ChatRuntime, get_chat_runtime

router = APIRouter()


@router.get("/health")
async def health_check(
    request: Request,
    runtime: ChatRuntime = Depends(get_chat_runtime),
):
    """Check server health and dependency connectivity."""
    checks = {"server": "ok", "version": __version__}

    # Check Postgres (skipped when messages live in memory)
    if request.app.state.memory_store is None:
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            checks["postgres"] = "ok"
        except Exception as e:
            checks["postgres"] = f"error: {e}"

    # Check Redis
    try:
        from redis.asyncio import from_url

        r = from_url(settings.redis_url)
        await r.ping()
        await r.aclose()
        checks["redis"] = "ok"
    except Exception as e:
        checks["redis"] = f"error: {e}"

    status = "healthy" if all(
        v == "ok" for k, v in checks.items() if k != "version"
    ) else "degraded"

    return {"status": status, **checks, "realtime": runtime.get_stats()}
