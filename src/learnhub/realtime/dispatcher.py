"""Fan-out dispatcher — persist an inbound chat event, then push it.

For every valid event:
1. Persist via the message store (bounded by persist_timeout)
2. Resolve the recipient set, fresh per event:
   community → current members, direct → the one recipient
3. Fetch the author's profile for enrichment
4. Look each recipient up in the registry and push
   {"type", "message"} to every live connection found

Failure policy (nothing is ever reported back to the sender):
- Persistence fails or times out → log, drop, push to nobody.
  A message nobody can read back is never delivered.
- Recipient not in the registry → offline, skip silently.
- Push fails → that recipient is treated as offline, its connection is
  evicted through the lifecycle manager, the rest of the fan-out goes on.

Ordering: events for the same conversation (one community, or one DM
pair) are processed one at a time under a per-conversation lock, so
every online member sees them in processing order. Different
conversations proceed concurrently.
"""

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import structlog

from learnhub.realtime.connection import Connection, ConnectionWriteFailure
from learnhub.realtime.envelope import (
    COMMUNITY_MESSAGE,
    DIRECT_MESSAGE,
    ChatEvent,
    CommunityMessageEvent,
    outbound_envelope,
)
from learnhub.realtime.lifecycle import ConnectionLifecycleManager
from learnhub.realtime.registry import ConnectionRegistry
from learnhub.schemas.message import MessageRead, MessageWithAuthor, UserPublic
from learnhub.store import MessageStore, PersistenceError, StoreScope

logger = structlog.get_logger()


@dataclass
class DispatcherConfig:
    """Tunables for the fan-out dispatcher."""
    persist_timeout: Optional[float] = 5.0  # seconds; None = wait forever
    send_timeout: Optional[float] = 5.0
    identity_field: str = "email"  # UserPublic attribute used as registry key
    echo_direct_messages: bool = False
    persistence_alert_threshold: int = 5


@dataclass
class DispatcherStats:
    """Runtime statistics for monitoring."""
    received: int = 0
    persisted: int = 0
    malformed: int = 0
    persist_failures: int = 0
    consecutive_persist_failures: int = 0
    pushes: int = 0
    push_failures: int = 0
    started_at: Optional[datetime] = None


@dataclass
class DispatchResult:
    """What happened to one inbound event."""
    message: Optional[MessageWithAuthor]
    delivered_to: list[str]

    @property
    def persisted(self) -> bool:
        return self.message is not None


class FanoutDispatcher:
    """Persists inbound chat events and fans them out to live connections."""

    def __init__(
        self,
        store_scope: StoreScope,
        registry: ConnectionRegistry,
        lifecycle: ConnectionLifecycleManager,
        config: Optional[DispatcherConfig] = None,
    ):
        self.store_scope = store_scope
        self.registry = registry
        self.lifecycle = lifecycle
        self.config = config or DispatcherConfig()
        self.stats = DispatcherStats(started_at=datetime.now(timezone.utc))
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    # ─── Entry point ──────────────────────────────────────

    async def handle_inbound(self, event: ChatEvent) -> DispatchResult:
        """Persist one validated event and push it to online recipients.

        Never raises for store or transport failures; the result says
        whether the message was persisted and who it reached.
        """
        self.stats.received += 1
        key = event.conversation_key

        async with self._conversation_lock(key):
            async with self.store_scope() as store:
                saved = await self._persist(store, event)
                if saved is None:
                    return DispatchResult(message=None, delivered_to=[])

                try:
                    recipients = await self._bounded(self._resolve_recipients(store, event))
                    author = await self._bounded(store.get_user(event.author_id))
                except (PersistenceError, asyncio.TimeoutError) as e:
                    # Saved but undeliverable; clients will see it on their next history read.
                    logger.warning(
                        "chat.recipients_unavailable",
                        message_id=saved.id,
                        conversation=key,
                        error=str(e) or type(e).__name__,
                    )
                    return DispatchResult(
                        message=MessageWithAuthor(**saved.model_dump()),
                        delivered_to=[],
                    )

            message = MessageWithAuthor(**saved.model_dump(), author=author)
            envelope_type = (
                COMMUNITY_MESSAGE
                if isinstance(event, CommunityMessageEvent)
                else DIRECT_MESSAGE
            )
            delivered = await self._fan_out(
                outbound_envelope(envelope_type, message),
                self._identities(recipients),
            )

        logger.debug(
            "chat.delivered",
            message_id=saved.id,
            conversation=key,
            recipients=len(recipients),
            delivered=len(delivered),
        )
        return DispatchResult(message=message, delivered_to=delivered)

    def record_malformed(self, reason: str) -> None:
        """Count a frame that was dropped before reaching the dispatcher."""
        self.stats.malformed += 1
        logger.debug("chat.malformed_event", reason=reason)

    # ─── Persistence ──────────────────────────────────────

    async def _persist(self, store: MessageStore, event: ChatEvent) -> Optional[MessageRead]:
        """Save the message. Returns None (and logs) on failure; never retries."""
        try:
            saved = await self._bounded(store.create_message(event.to_new_message()))
        except (PersistenceError, asyncio.TimeoutError) as e:
            self.stats.persist_failures += 1
            self.stats.consecutive_persist_failures += 1
            logger.warning(
                "chat.persist_failed",
                conversation=event.conversation_key,
                author_id=event.author_id,
                error=str(e) or type(e).__name__,
            )
            if (
                self.stats.consecutive_persist_failures
                >= self.config.persistence_alert_threshold
            ):
                logger.error(
                    "chat.persist_alert",
                    consecutive_failures=self.stats.consecutive_persist_failures,
                )
            return None

        self.stats.persisted += 1
        self.stats.consecutive_persist_failures = 0
        return saved

    async def _resolve_recipients(
        self, store: MessageStore, event: ChatEvent
    ) -> list[UserPublic]:
        if isinstance(event, CommunityMessageEvent):
            return await store.get_community_members(event.community_id)

        recipients = []
        recipient = await store.get_user(event.recipient_id)
        if recipient:
            recipients.append(recipient)
        if self.config.echo_direct_messages and event.author_id != event.recipient_id:
            author = await store.get_user(event.author_id)
            if author:
                recipients.append(author)
        return recipients

    def _identities(self, users: Iterable[UserPublic]) -> list[str]:
        seen: dict[str, None] = {}
        for user in users:
            identity = getattr(user, self.config.identity_field, None)
            if identity:
                seen.setdefault(identity, None)
        return list(seen)

    # ─── Delivery ─────────────────────────────────────────

    async def _fan_out(self, envelope: dict, identities: list[str]) -> list[str]:
        targets: list[tuple[str, Connection]] = []
        for identity in identities:
            connection = self.registry.lookup(identity)
            if connection is not None and connection.is_open:
                targets.append((identity, connection))

        if not targets:
            return []

        results = await asyncio.gather(
            *(self._push(identity, conn, envelope) for identity, conn in targets)
        )
        return [identity for (identity, _), ok in zip(targets, results) if ok]

    async def _push(self, identity: str, connection: Connection, envelope: dict) -> bool:
        try:
            await connection.send(envelope, timeout=self.config.send_timeout)
        except ConnectionWriteFailure as e:
            self.stats.push_failures += 1
            logger.info(
                "chat.push_failed",
                identity=identity,
                connection_id=connection.id,
                error=str(e),
            )
            await self.lifecycle.evict(connection, error=str(e))
            return False
        self.stats.pushes += 1
        return True

    # ─── Helpers ──────────────────────────────────────────

    async def _bounded(self, coro):
        return await asyncio.wait_for(coro, self.config.persist_timeout)

    def _conversation_lock(self, key: str) -> "_ConversationLock":
        return _ConversationLock(self, key)

    def get_stats(self) -> dict:
        """Return dispatcher statistics for monitoring."""
        return {
            "received": self.stats.received,
            "persisted": self.stats.persisted,
            "malformed": self.stats.malformed,
            "persist_failures": self.stats.persist_failures,
            "consecutive_persist_failures": self.stats.consecutive_persist_failures,
            "pushes": self.stats.pushes,
            "push_failures": self.stats.push_failures,
            "active_conversations": len(self._locks),
            "started_at": (
                self.stats.started_at.isoformat()
                if self.stats.started_at
                else None
            ),
        }


class _ConversationLock:
    """Per-conversation asyncio.Lock, dropped once nobody holds or awaits it."""

    def __init__(self, dispatcher: FanoutDispatcher, key: str):
        self._dispatcher = dispatcher
        self._key = key

    async def __aenter__(self):
        d = self._dispatcher
        lock = d._locks.setdefault(self._key, asyncio.Lock())
        d._waiters[self._key] = d._waiters.get(self._key, 0) + 1
        try:
            await lock.acquire()
        except BaseException:
            self._release_waiter()
            raise
        return lock

    async def __aexit__(self, exc_type, exc, tb):
        self._dispatcher._locks[self._key].release()
        self._release_waiter()
        return False

    def _release_waiter(self) -> None:
        d = self._dispatcher
        d._waiters[self._key] -= 1
        if d._waiters[self._key] == 0:
            del d._waiters[self._key]
            del d._locks[self._key]
