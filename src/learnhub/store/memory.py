"""In-memory message store — dict-backed MessageStore.

Used for local demos (LEARNHUB_STORAGE_BACKEND=memory) and tests.
It enforces the same referential rules the SQL schema does, so a
message from an unknown author or to an unknown community fails with
PersistenceError here too.
"""

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Optional

from learnhub.schemas.message import (
    MessageRead,
    MessageWithAuthor,
    NewMessage,
    UserPublic,
)
from learnhub.store import MessageStore, PersistenceError


class MemoryMessageStore(MessageStore):
    """MessageStore that keeps everything in process memory."""

    def __init__(self):
        self.users: dict[str, UserPublic] = {}
        self.communities: dict[str, dict] = {}
        self.members: dict[str, list[str]] = {}  # community_id → user ids
        self.messages: list[MessageRead] = []

    # ─── Seeding ──────────────────────────────────────────

    def add_user(self, user_id: str, email: str, name: Optional[str] = None, **profile) -> UserPublic:
        now = datetime.now(timezone.utc)
        user = UserPublic(
            id=user_id,
            email=email,
            name=name or user_id,
            created_at=now,
            updated_at=now,
            **profile,
        )
        self.users[user_id] = user
        return user

    def add_community(self, community_id: str, name: Optional[str] = None) -> None:
        self.communities[community_id] = {"id": community_id, "name": name or community_id}
        self.members.setdefault(community_id, [])

    def add_member(self, community_id: str, user_id: str) -> None:
        if community_id not in self.communities:
            self.add_community(community_id)
        if user_id not in self.members[community_id]:
            self.members[community_id].append(user_id)

    def remove_member(self, community_id: str, user_id: str) -> None:
        if user_id in self.members.get(community_id, []):
            self.members[community_id].remove(user_id)

    # ─── MessageStore ─────────────────────────────────────

    async def create_message(self, message: NewMessage) -> MessageRead:
        if message.author_id not in self.users:
            raise PersistenceError(f"Unknown author {message.author_id}")
        if message.type == "community" and message.community_id not in self.communities:
            raise PersistenceError(f"Unknown community {message.community_id}")
        if message.type == "direct" and message.recipient_id not in self.users:
            raise PersistenceError(f"Unknown recipient {message.recipient_id}")

        stored = MessageRead(
            id=str(uuid.uuid4()),
            content=message.content,
            author_id=message.author_id,
            community_id=message.community_id,
            recipient_id=message.recipient_id,
            type=message.type,
            created_at=datetime.now(timezone.utc),
        )
        self.messages.append(stored)
        return stored

    async def get_community_members(self, community_id: str) -> list[UserPublic]:
        return [
            self.users[uid]
            for uid in self.members.get(community_id, [])
            if uid in self.users
        ]

    async def get_user(self, user_id: str) -> Optional[UserPublic]:
        return self.users.get(user_id)

    async def community_exists(self, community_id: str) -> bool:
        return community_id in self.communities

    async def get_community_messages(
        self, community_id: str, limit: int = 50
    ) -> list[MessageWithAuthor]:
        matching = [
            m for m in self.messages
            if m.type == "community" and m.community_id == community_id
        ]
        return self._with_authors(matching[-limit:])

    async def get_direct_messages(
        self, user_a: str, user_b: str, limit: int = 50
    ) -> list[MessageWithAuthor]:
        pair = {user_a, user_b}
        matching = [
            m for m in self.messages
            if m.type == "direct" and {m.author_id, m.recipient_id} == pair
        ]
        return self._with_authors(matching[-limit:])

    def _with_authors(self, messages: list[MessageRead]) -> list[MessageWithAuthor]:
        # self.messages is append-only, so list order is creation order.
        return [
            MessageWithAuthor(**m.model_dump(), author=self.users.get(m.author_id))
            for m in messages
        ]

    @asynccontextmanager
    async def scope(self) -> AsyncIterator["MemoryMessageStore"]:
        """StoreScope over this single shared instance."""
        yield self
