"""Pydantic schemas for chat messages and their authors.

These are the shapes that travel over the wire: live pushes on the
WebSocket and the history endpoints both return MessageWithAuthor, so
a client can merge the two streams without reshaping anything.

Keys are camelCase on the wire (authorId, communityId, createdAt) and
snake_case in Python.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

MessageType = Literal["community", "direct"]


class WireModel(BaseModel):
    """Base for models serialized with camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# ─── Users ──────────────────────────────────────────────


class UserPublic(WireModel):
    """Public profile fields attached to every message as `author`."""
    id: str
    email: str
    name: str
    avatar: Optional[str] = None
    title: Optional[str] = None
    location: Optional[str] = None
    bio: Optional[str] = None
    skills: list[str] = Field(default_factory=list)
    github: Optional[str] = None
    linkedin: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# ─── Messages ───────────────────────────────────────────


class NewMessage(BaseModel):
    """A message about to be persisted (no id / timestamp yet)."""
    content: str = Field(..., min_length=1)
    author_id: str
    type: MessageType
    community_id: Optional[str] = None
    recipient_id: Optional[str] = None

    @model_validator(mode="after")
    def check_single_target(self):
        if self.type == "community":
            if not self.community_id or self.recipient_id is not None:
                raise ValueError("community messages need community_id and no recipient_id")
        elif not self.recipient_id or self.community_id is not None:
            raise ValueError("direct messages need recipient_id and no community_id")
        return self


class MessageRead(WireModel):
    """A persisted message."""
    id: str
    content: str
    author_id: str
    community_id: Optional[str] = None
    recipient_id: Optional[str] = None
    type: MessageType
    created_at: datetime


class MessageWithAuthor(MessageRead):
    """A persisted message enriched with its author's profile."""
    author: Optional[UserPublic] = None
