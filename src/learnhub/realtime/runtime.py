"""Chat runtime — the per-process set of realtime objects.

One registry, one lifecycle manager, one dispatcher, built together in
create_app() and kept on app.state.chat. Nothing here is a module
global, so tests can run several runtimes side by side.
"""

from dataclasses import dataclass

from starlette.requests import HTTPConnection

from learnhub.config import Settings
from learnhub.realtime.dispatcher import DispatcherConfig, FanoutDispatcher
from learnhub.realtime.lifecycle import ConnectionLifecycleManager
from learnhub.realtime.registry import ConnectionRegistry
from learnhub.store import StoreScope


@dataclass
class ChatRuntime:
    registry: ConnectionRegistry
    lifecycle: ConnectionLifecycleManager
    dispatcher: FanoutDispatcher

    def get_stats(self) -> dict:
        return {
            "connections": self.lifecycle.live_count,
            "registered_identities": len(self.registry),
            "dispatcher": self.dispatcher.get_stats(),
        }


def build_chat_runtime(settings: Settings, store_scope: StoreScope) -> ChatRuntime:
    registry = ConnectionRegistry()
    lifecycle = ConnectionLifecycleManager(
        registry,
        close_superseded=settings.close_superseded_connections,
        close_timeout=settings.send_timeout_seconds,
    )
    dispatcher = FanoutDispatcher(
        store_scope=store_scope,
        registry=registry,
        lifecycle=lifecycle,
        config=DispatcherConfig(
            persist_timeout=settings.persist_timeout_seconds,
            send_timeout=settings.send_timeout_seconds,
            identity_field=settings.identity_field,
            echo_direct_messages=settings.echo_direct_messages,
            persistence_alert_threshold=settings.persistence_alert_threshold,
        ),
    )
    return ChatRuntime(registry=registry, lifecycle=lifecycle, dispatcher=dispatcher)


def get_chat_runtime(conn: HTTPConnection) -> ChatRuntime:
    """Dependency: the runtime the lifespan stored on app.state."""
    return conn.app.state.chat
