"""Connection lifecycle manager — open, supersede, close, evict.

Per connection state machine: CONNECTING → OPEN → CLOSED (terminal).

- open(): CONNECTING → OPEN. With an identity the connection is
  registered (and, by default, whatever connection it replaces is
  closed). Without one it is an observer: its frames are processed but
  nothing can be pushed to it.
- close(): OPEN → CLOSED exactly once, whoever asks first (peer close,
  failed write, superseded by a reconnect, server shutdown). Further
  calls are no-ops. Unregisters the connection's own entry only.
- evict(): close() for a connection the dispatcher failed to write to.
"""

import asyncio
from typing import Optional

import structlog

from learnhub.realtime.connection import Connection, ConnectionState
from learnhub.realtime.registry import ConnectionRegistry

logger = structlog.get_logger()

# WebSocket close codes
CLOSE_NORMAL = 1000
CLOSE_GOING_AWAY = 1001
CLOSE_SUPERSEDED = 4000
CLOSE_UNAUTHORIZED = 4001
CLOSE_WRITE_FAILED = 4002


class ConnectionLifecycleManager:
    """Owns every live connection between accept and close."""

    def __init__(
        self,
        registry: ConnectionRegistry,
        close_superseded: bool = True,
        close_timeout: Optional[float] = 5.0,
    ):
        self.registry = registry
        self.close_superseded = close_superseded
        self.close_timeout = close_timeout  # seconds; None = wait forever
        self._live: dict[str, Connection] = {}  # connection id → connection

    async def open(self, connection: Connection) -> None:
        """Transition a freshly accepted connection into OPEN."""
        if connection.state != ConnectionState.CONNECTING:
            return

        connection.state = ConnectionState.OPEN
        self._live[connection.id] = connection

        if not connection.identity:
            logger.info("ws.observer_connected", connection_id=connection.id)
            return

        previous = self.registry.replace(connection.identity, connection)
        logger.info(
            "ws.connected",
            identity=connection.identity,
            connection_id=connection.id,
            replaced=previous.id if previous else None,
        )

        if previous is not None and self.close_superseded:
            logger.info(
                "ws.superseded",
                identity=connection.identity,
                connection_id=previous.id,
                replaced_by=connection.id,
            )
            await self.close(previous, code=CLOSE_SUPERSEDED, reason="Superseded by a newer connection")

    async def close(
        self,
        connection: Connection,
        code: int = CLOSE_NORMAL,
        reason: str = "",
    ) -> bool:
        """Move a connection to CLOSED. Returns False if it already was."""
        if connection.state == ConnectionState.CLOSED:
            return False

        connection.state = ConnectionState.CLOSED
        self._live.pop(connection.id, None)
        if connection.identity:
            self.registry.unregister(connection.identity, connection)

        try:
            await asyncio.wait_for(
                connection.close_transport(code, reason), self.close_timeout
            )
        except Exception as e:
            # The peer may be gone or stalled; the connection is CLOSED either way.
            logger.debug(
                "ws.close_transport_failed",
                connection_id=connection.id,
                error=str(e) or type(e).__name__,
            )

        logger.info(
            "ws.closed",
            identity=connection.identity,
            connection_id=connection.id,
            code=code,
        )
        return True

    async def evict(self, connection: Connection, error: Optional[str] = None) -> None:
        """Close a connection after a failed push."""
        if await self.close(connection, code=CLOSE_WRITE_FAILED, reason="Write failed"):
            logger.info(
                "ws.evicted",
                identity=connection.identity,
                connection_id=connection.id,
                error=error,
            )

    async def close_all(self) -> int:
        """Close every live connection (server shutdown). Returns how many."""
        connections = list(self._live.values())
        for connection in connections:
            await self.close(connection, code=CLOSE_GOING_AWAY, reason="Server shutting down")
        return len(connections)

    @property
    def live_count(self) -> int:
        return len(self._live)
