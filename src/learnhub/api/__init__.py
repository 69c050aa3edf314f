"""API route aggregation.

All routers registered here get mounted in main.py.

Auth is applied at the include_router level using FastAPI's
dependencies parameter. Health is open; history reads require a
valid Bearer JWT.
"""

from fastapi import APIRouter, Depends

from learnhub.api.health import router as health_router
from learnhub.api.messages import router as messages_router
from learnhub.auth.dependencies import get_current_user

# All protected routers require authentication
_auth = [Depends(get_current_user)]

api_router = APIRouter(prefix="/api/v1")

# Open routes: no auth required
api_router.include_router(health_router, tags=["health"])

# Protected routes: require valid JWT
api_router.include_router(messages_router, tags=["messages"], dependencies=_auth)
