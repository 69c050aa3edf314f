"""Request ID middleware — one ID per HTTP request, on every log line.

The ID comes from the incoming X-Request-ID header when a proxy already
assigned one, otherwise it is generated here. It is bound to structlog's
contextvars for the duration of the request and echoed back in the
response. Each finished request is logged once as `http.request`.

WebSocket scopes pass straight through: a chat connection logs under its
connection_id instead.
"""

import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.get_logger()

HEADER = "X-Request-ID"


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tag each request with an ID and log its outcome."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(HEADER) or uuid.uuid4().hex

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        started = time.perf_counter()
        response: Response = await call_next(request)
        response.headers[HEADER] = request_id

        logger.debug(
            "http.request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        return response
