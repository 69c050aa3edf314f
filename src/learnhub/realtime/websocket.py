"""WebSocket endpoint — the chat connection every client keeps open.

Each client connects to /ws?token=JWT (or ?userEmail=... in development).
The handler:
1. Accepts, then resolves the identity from the handshake query params
   (a bad token closes the socket with 4001)
2. Hands the connection to the lifecycle manager
3. Reads frames one at a time and passes valid chat events to the
   dispatcher (so one connection's events are processed in order)
4. On disconnect, closes the connection through the lifecycle manager

Malformed frames are dropped; the connection stays open. Dispatch
errors are logged and never close the socket.
"""

from typing import Optional

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from starlette.datastructures import QueryParams

from learnhub.auth.jwt import TokenError, identity_from_claims, verify_token
from learnhub.config import settings
from learnhub.realtime.connection import ConnectionWriteFailure, WebSocketConnection
from learnhub.realtime.envelope import MalformedEvent, PingEvent, parse_frame, pong
from learnhub.realtime.lifecycle import CLOSE_UNAUTHORIZED
from learnhub.realtime.runtime import ChatRuntime, get_chat_runtime

logger = structlog.get_logger()
router = APIRouter()


def resolve_identity(params: QueryParams) -> Optional[str]:
    """Identity for a handshake, or None for an observer session.

    A signed token always wins. The bare identity param is an email, so
    it is trusted only in development and only while the registry is
    keyed by email; otherwise the session is an observer.
    Raises TokenError for a token that does not verify.
    """
    token = params.get(settings.ws_token_param)
    if token:
        return identity_from_claims(verify_token(token))

    claimed = params.get(settings.ws_identity_param)
    if not claimed or not settings.is_development:
        return None
    if settings.identity_field != "email":
        logger.warning(
            "ws.identity_param_ignored",
            param=settings.ws_identity_param,
            identity_field=settings.identity_field,
        )
        return None
    return claimed


@router.websocket(settings.ws_path)
async def chat_websocket(websocket: WebSocket):
    """Full-duplex chat connection."""
    # ── Handshake ───────────────────────────────────────────
    # Accepted first so a rejected token reaches the client as close code 4001.
    await websocket.accept()
    try:
        identity = resolve_identity(websocket.query_params)
    except TokenError as e:
        await websocket.close(code=CLOSE_UNAUTHORIZED, reason=str(e))
        return

    runtime: ChatRuntime = get_chat_runtime(websocket)

    # ── Connection accepted ─────────────────────────────────
    connection = WebSocketConnection(websocket, identity=identity)
    await runtime.lifecycle.open(connection)

    log = logger.bind(connection_id=connection.id, identity=identity)

    try:
        while connection.is_open:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes") or b""
            await _handle_frame(raw, connection, runtime, log)
    except WebSocketDisconnect:
        pass
    finally:
        await runtime.lifecycle.close(connection)


async def _handle_frame(raw, connection: WebSocketConnection, runtime: ChatRuntime, log) -> None:
    try:
        event = parse_frame(raw, max_content_length=settings.max_message_length)
    except MalformedEvent as e:
        runtime.dispatcher.record_malformed(str(e))
        return

    if isinstance(event, PingEvent):
        try:
            await connection.send(pong(), timeout=settings.send_timeout_seconds)
        except ConnectionWriteFailure as e:
            await runtime.lifecycle.evict(connection, error=str(e))
        return

    try:
        await runtime.dispatcher.handle_inbound(event)
    except Exception:
        # The dispatcher is shared by every connection; one bad event must not take it down.
        log.exception("chat.dispatch_error", event_type=event.type)
