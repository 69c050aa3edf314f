"""Message store gateways — the only way the chat core touches storage.

The realtime dispatcher needs three operations (create a message, list
a community's members, fetch a user). The history endpoints need two
more reads. Both backends implement the same MessageStore interface:

- SqlMessageStore: SQLAlchemy async session (production)
- MemoryMessageStore: in-process dicts (local demos, tests)

A *store scope* is an async context manager yielding a MessageStore.
The dispatcher opens one per inbound event so every event gets its own
unit of work.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from typing import Callable, Optional

from learnhub.schemas.message import (
    MessageRead,
    MessageWithAuthor,
    NewMessage,
    UserPublic,
)


class PersistenceError(Exception):
    """Raised when the store cannot save or read (unavailable, constraint violation)."""


class MessageStore(ABC):
    """Narrow storage interface consumed by the chat core."""

    @abstractmethod
    async def create_message(self, message: NewMessage) -> MessageRead:
        """Persist a message and return the stored record (id, created_at)."""

    @abstractmethod
    async def get_community_members(self, community_id: str) -> list[UserPublic]:
        """Current members of a community. Empty if none or unknown community."""

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[UserPublic]:
        """Fetch a user's public profile."""

    @abstractmethod
    async def community_exists(self, community_id: str) -> bool:
        """Whether a community with this id exists."""

    @abstractmethod
    async def get_community_messages(
        self, community_id: str, limit: int = 50
    ) -> list[MessageWithAuthor]:
        """Newest `limit` community messages, returned oldest first."""

    @abstractmethod
    async def get_direct_messages(
        self, user_a: str, user_b: str, limit: int = 50
    ) -> list[MessageWithAuthor]:
        """Newest `limit` messages between two users (either direction), oldest first."""


StoreScope = Callable[[], AbstractAsyncContextManager[MessageStore]]
