"""Wire envelope — the only contract between the socket and the dispatcher.

Inbound frames (client → server) are UTF-8 JSON objects tagged by `type`:

    {"type": "community_message", "content", "authorId", "communityId"}
    {"type": "direct_message",    "content", "authorId", "recipientId"}
    {"type": "ping"}

Outbound frames (server → client):

    {"type": "community_message" | "direct_message", "message": MessageWithAuthor}
    {"type": "pong"}

Frames are validated here, at the boundary, into a discriminated union.
Anything that does not validate (bad JSON, unknown tag, missing field,
blank content) raises MalformedEvent and never reaches the dispatcher.
"""

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from learnhub.schemas.message import MessageWithAuthor, NewMessage

COMMUNITY_MESSAGE = "community_message"
DIRECT_MESSAGE = "direct_message"
PING = "ping"
PONG = "pong"


class MalformedEvent(Exception):
    """Raised for a frame that is not a valid inbound event."""


class _InboundModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class _ChatEvent(_InboundModel):
    content: str
    author_id: str = Field(..., min_length=1)

    @field_validator("content")
    @classmethod
    def content_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("content must not be blank")
        return v


class CommunityMessageEvent(_ChatEvent):
    type: Literal["community_message"]
    community_id: str = Field(..., min_length=1)

    @property
    def conversation_key(self) -> str:
        return f"community:{self.community_id}"

    def to_new_message(self) -> NewMessage:
        return NewMessage(
            content=self.content,
            author_id=self.author_id,
            community_id=self.community_id,
            type="community",
        )


class DirectMessageEvent(_ChatEvent):
    type: Literal["direct_message"]
    recipient_id: str = Field(..., min_length=1)

    @property
    def conversation_key(self) -> str:
        a, b = sorted((self.author_id, self.recipient_id))
        return f"direct:{a}:{b}"

    def to_new_message(self) -> NewMessage:
        return NewMessage(
            content=self.content,
            author_id=self.author_id,
            recipient_id=self.recipient_id,
            type="direct",
        )


class PingEvent(_InboundModel):
    type: Literal["ping"]


ChatEvent = Union[CommunityMessageEvent, DirectMessageEvent]
InboundEvent = Annotated[
    Union[CommunityMessageEvent, DirectMessageEvent, PingEvent],
    Field(discriminator="type"),
]

_inbound = TypeAdapter(InboundEvent)


def parse_frame(
    raw: str | bytes,
    max_content_length: int | None = None,
) -> Union[CommunityMessageEvent, DirectMessageEvent, PingEvent]:
    """Validate one inbound frame. Raises MalformedEvent."""
    try:
        event = _inbound.validate_json(raw)
    except ValidationError as e:
        errors = e.errors(include_url=False, include_input=False)
        reason = errors[0]["type"] if errors else "invalid"
        raise MalformedEvent(reason) from e

    if (
        max_content_length is not None
        and isinstance(event, _ChatEvent)
        and len(event.content) > max_content_length
    ):
        raise MalformedEvent("content_too_long")
    return event


def outbound_envelope(event_type: str, message: MessageWithAuthor) -> dict:
    """Wrap a message for delivery: {"type", "message"}."""
    return {"type": event_type, "message": message.to_wire()}


def pong() -> dict:
    return {"type": PONG}
