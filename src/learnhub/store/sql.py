"""SQL message store — SQLAlchemy async implementation of MessageStore.

Every SQLAlchemyError is re-raised as PersistenceError so callers never
depend on driver-specific exceptions. create_message commits its own
transaction: a message that was pushed to anyone must already be durable.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from learnhub.db.models import Community, CommunityMember, Message, User
from learnhub.schemas.message import (
    MessageRead,
    MessageWithAuthor,
    NewMessage,
    UserPublic,
)
from learnhub.store import MessageStore, PersistenceError


class SqlMessageStore(MessageStore):
    """MessageStore backed by one AsyncSession."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ─── Writes ───────────────────────────────────────────

    async def create_message(self, message: NewMessage) -> MessageRead:
        row = Message(
            content=message.content,
            author_id=message.author_id,
            community_id=message.community_id,
            recipient_id=message.recipient_id,
            type=message.type,
        )
        try:
            self.db.add(row)
            await self.db.commit()
            await self.db.refresh(row)
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise PersistenceError(f"Could not save message: {e}") from e
        return MessageRead.model_validate(row)

    # ─── Reads ────────────────────────────────────────────

    async def get_community_members(self, community_id: str) -> list[UserPublic]:
        q = (
            select(User)
            .join(CommunityMember, CommunityMember.user_id == User.id)
            .where(CommunityMember.community_id == community_id)
            .order_by(CommunityMember.joined_at)
        )
        users = await self._scalars(q)
        return [UserPublic.model_validate(u) for u in users]

    async def get_user(self, user_id: str) -> Optional[UserPublic]:
        try:
            user = await self.db.get(User, user_id)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not load user {user_id}: {e}") from e
        return UserPublic.model_validate(user) if user else None

    async def community_exists(self, community_id: str) -> bool:
        try:
            community = await self.db.get(Community, community_id)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not load community {community_id}: {e}") from e
        return community is not None

    async def get_community_messages(
        self, community_id: str, limit: int = 50
    ) -> list[MessageWithAuthor]:
        q = (
            select(Message)
            .options(selectinload(Message.author))
            .where(
                Message.community_id == community_id,
                Message.type == "community",
            )
            .order_by(Message.created_at.desc(), Message.id.desc())
            .limit(limit)
        )
        return self._with_authors(await self._scalars(q))

    async def get_direct_messages(
        self, user_a: str, user_b: str, limit: int = 50
    ) -> list[MessageWithAuthor]:
        q = (
            select(Message)
            .options(selectinload(Message.author))
            .where(
                Message.type == "direct",
                or_(
                    and_(Message.author_id == user_a, Message.recipient_id == user_b),
                    and_(Message.author_id == user_b, Message.recipient_id == user_a),
                ),
            )
            .order_by(Message.created_at.desc(), Message.id.desc())
            .limit(limit)
        )
        return self._with_authors(await self._scalars(q))

    # ─── Helpers ──────────────────────────────────────────

    async def _scalars(self, query) -> list:
        try:
            result = await self.db.execute(query)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Query failed: {e}") from e
        return list(result.scalars().all())

    @staticmethod
    def _with_authors(newest_first: list[Message]) -> list[MessageWithAuthor]:
        # Fetched newest-first so LIMIT keeps the latest; clients want oldest-first.
    # Rows sharing a timestamp fall back to id order.
        return [
            MessageWithAuthor.model_validate(m) for m in reversed(newest_first)
        ]


def sql_store_scope(session_factory: async_sessionmaker):
    """Build a StoreScope that opens a fresh session per unit of work."""

    @asynccontextmanager
    async def scope() -> AsyncIterator[SqlMessageStore]:
        async with session_factory() as db:
            yield SqlMessageStore(db)

    return scope
