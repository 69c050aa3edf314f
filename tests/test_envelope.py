"""Wire envelope tests — boundary validation of inbound frames."""

import json
from datetime import datetime, timezone

import pytest

from learnhub.realtime.envelope import (
    CommunityMessageEvent,
    DirectMessageEvent,
    MalformedEvent,
    PingEvent,
    outbound_envelope,
    parse_frame,
)
from learnhub.schemas.message import MessageWithAuthor, UserPublic


def test_parse_community_message():
    event = parse_frame(json.dumps({
        "type": "community_message",
        "content": "hi",
        "authorId": "alice",
        "communityId": "C1",
    }))
    assert isinstance(event, CommunityMessageEvent)
    assert event.author_id == "alice"
    assert event.community_id == "C1"
    assert event.conversation_key == "community:C1"

    new = event.to_new_message()
    assert new.type == "community"
    assert new.community_id == "C1"
    assert new.recipient_id is None


def test_parse_direct_message():
    event = parse_frame(json.dumps({
        "type": "direct_message",
        "content": "hey",
        "authorId": "bob",
        "recipientId": "alice",
    }))
    assert isinstance(event, DirectMessageEvent)
    assert event.to_new_message().type == "direct"
    assert event.to_new_message().recipient_id == "alice"


def test_direct_conversation_key_is_symmetric():
    ab = parse_frame('{"type":"direct_message","content":"x","authorId":"a","recipientId":"b"}')
    ba = parse_frame('{"type":"direct_message","content":"y","authorId":"b","recipientId":"a"}')
    assert ab.conversation_key == ba.conversation_key


def test_parse_ping_and_bytes():
    assert isinstance(parse_frame(b'{"type": "ping"}'), PingEvent)


@pytest.mark.parametrize(
    "raw",
    [
        "not json at all",
        "[1, 2, 3]",
        '{"type": "unknown", "content": "hi"}',
        '{"content": "hi", "authorId": "alice", "communityId": "C1"}',
        '{"type": "community_message", "authorId": "alice", "communityId": "C1"}',
        '{"type": "community_message", "content": "   ", "authorId": "alice", "communityId": "C1"}',
        '{"type": "community_message", "content": "hi", "authorId": "alice"}',
        '{"type": "direct_message", "content": "hi", "authorId": "alice"}',
        '{"type": "direct_message", "content": "hi", "authorId": "", "recipientId": "bob"}',
    ],
)
def test_malformed_frames_raise(raw):
    with pytest.raises(MalformedEvent):
        parse_frame(raw)


def test_content_length_limit():
    raw = json.dumps({
        "type": "community_message",
        "content": "x" * 11,
        "authorId": "alice",
        "communityId": "C1",
    })
    assert parse_frame(raw, max_content_length=11)
    with pytest.raises(MalformedEvent, match="content_too_long"):
        parse_frame(raw, max_content_length=10)


def test_outbound_envelope_uses_camel_case():
    message = MessageWithAuthor(
        id="m1",
        content="hi",
        author_id="alice",
        community_id="C1",
        type="community",
        created_at=datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
        author=UserPublic(id="alice", email="alice@example.com", name="Alice"),
    )
    frame = outbound_envelope("community_message", message)

    assert frame["type"] == "community_message"
    body = frame["message"]
    assert body["authorId"] == "alice"
    assert body["communityId"] == "C1"
    assert body["recipientId"] is None
    assert body["createdAt"].startswith("2026-01-02T03:04:05")
    assert body["author"]["name"] == "Alice"
    json.dumps(frame)  # must be JSON-serializable as is
