"""Connection registry — identity → the one live connection for it.

The registry is an explicit object owned by the app (one per process,
created by create_app() and stored on app.state), never a module global.
Tests build as many independent registries as they like.

Rules:
- At most one connection per identity. Registering again replaces the
  previous entry (last connection wins).
- The registry never closes connections; it only drops its reference.
  Closing a superseded connection is the lifecycle manager's job.
- unregister(identity, conn) only removes the entry if `conn` is still
  the registered one. A late close event from an old connection must
  not evict the newer connection that replaced it.

All three operations run under one lock, so they are atomic with
respect to each other even if called from a worker thread.
"""

import threading
from typing import Optional

from learnhub.realtime.connection import Connection


class ConnectionRegistry:
    """In-memory identity → connection map."""

    def __init__(self):
        self._connections: dict[str, Connection] = {}
        self._lock = threading.Lock()

    def register(self, identity: str, connection: Connection) -> None:
        """Associate identity with connection, replacing any prior entry."""
        self.replace(identity, connection)

    def replace(self, identity: str, connection: Connection) -> Optional[Connection]:
        """Register and return the connection that was replaced (if any)."""
        with self._lock:
            previous = self._connections.get(identity)
            self._connections[identity] = connection
        if previous is connection:
            return None
        return previous

    def unregister(self, identity: str, connection: Connection) -> bool:
        """Remove the entry only if it still points at `connection`.

        Returns True if something was removed.
        """
        with self._lock:
            if self._connections.get(identity) is connection:
                del self._connections[identity]
                return True
            return False

    def lookup(self, identity: str) -> Optional[Connection]:
        """Current connection for identity, or None if offline."""
        with self._lock:
            return self._connections.get(identity)

    def identities(self) -> list[str]:
        with self._lock:
            return list(self._connections)

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)

    def __contains__(self, identity: str) -> bool:
        with self._lock:
            return identity in self._connections
