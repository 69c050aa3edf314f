"""Connection handles — what the registry stores and the dispatcher pushes to.

A Connection is one live client socket plus the identity it was opened
with. Its state only moves forward:

    CONNECTING → OPEN → CLOSED

The lifecycle manager drives the transitions; the connection just
records them and refuses sends once it is no longer OPEN.
"""

import asyncio
import enum
import json
import uuid
from abc import ABC, abstractmethod
from typing import Any, Optional

from starlette.websockets import WebSocket, WebSocketState


class ConnectionState(str, enum.Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class ConnectionWriteFailure(Exception):
    """Raised when a push to a connection cannot be delivered."""


class Connection(ABC):
    """Transport-independent handle for one client connection."""

    def __init__(self, identity: Optional[str] = None):
        self.id = uuid.uuid4().hex
        self.identity = identity
        self.state = ConnectionState.CONNECTING

    @property
    def is_open(self) -> bool:
        return self.state == ConnectionState.OPEN

    async def send(self, payload: dict[str, Any], timeout: Optional[float] = None) -> None:
        """Push one JSON frame. Raises ConnectionWriteFailure on any failure."""
        if not self.is_open:
            raise ConnectionWriteFailure(f"Connection {self.id} is {self.state.value}")
        try:
            await asyncio.wait_for(self._write(json.dumps(payload)), timeout)
        except asyncio.TimeoutError as e:
            raise ConnectionWriteFailure(f"Send to {self.id} timed out") from e
        except ConnectionWriteFailure:
            raise
        except Exception as e:
            raise ConnectionWriteFailure(f"Send to {self.id} failed: {e}") from e

    @abstractmethod
    async def _write(self, text: str) -> None:
        """Write one text frame to the transport."""

    @abstractmethod
    async def close_transport(self, code: int, reason: str) -> None:
        """Close the underlying transport (best effort)."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.id[:8]} identity={self.identity!r} {self.state.value}>"


class WebSocketConnection(Connection):
    """Connection backed by a Starlette/FastAPI WebSocket."""

    def __init__(self, websocket: WebSocket, identity: Optional[str] = None):
        super().__init__(identity)
        self.websocket = websocket

    async def _write(self, text: str) -> None:
        await self.websocket.send_text(text)

    async def close_transport(self, code: int, reason: str) -> None:
        if self.websocket.client_state == WebSocketState.CONNECTED:
            await self.websocket.close(code=code, reason=reason)
