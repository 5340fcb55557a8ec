import asyncio
import logging

import pytest

from core.errors import AuthorizationError, NotFoundError, TransientError, ValidationError


async def test_like_match_chat_read_scenario(engine):
    first = await engine.submit_like("alice", "bob")
    assert not first.matched

    second = await engine.submit_like("bob", "alice")
    assert second.matched
    match_id = second.match_id

    assert await engine.send_message(match_id, "alice", "hi") == 1

    await engine.reads.mark_conversation_read(match_id, "bob")
    assert await engine.reads.unread_count(match_id, "bob") == 0
    assert await engine.reads.unread_count(match_id, "alice") == 0

    assert await engine.send_message(match_id, "bob", "hey") == 2
    assert await engine.reads.unread_count(match_id, "alice") == 1

    await engine.reads.mark_conversation_read(match_id, "alice")
    assert await engine.reads.unread_count(match_id, "alice") == 0


async def test_content_is_trimmed(engine, make_match):
    match_id = await make_match("alice", "bob")

    message = await engine.conversations.append_message(match_id, "alice", "   hello there \n")

    assert message.content == "hello there"
    assert message.read is False


@pytest.mark.parametrize("content", ["", "   ", "\n\t", None])
async def test_empty_content_is_rejected(engine, make_match, content):
    match_id = await make_match("alice", "bob")

    with pytest.raises(ValidationError):
        await engine.send_message(match_id, "alice", content)


async def test_oversized_content_is_rejected(engine, make_match):
    match_id = await make_match("alice", "bob")

    with pytest.raises(ValidationError):
        await engine.send_message(match_id, "alice", "x" * (engine.conversations.max_length + 1))


async def test_send_to_unknown_match(engine):
    with pytest.raises(NotFoundError):
        await engine.send_message(999, "alice", "hi")


async def test_send_by_non_member(engine, make_match):
    match_id = await make_match("alice", "bob")

    with pytest.raises(AuthorizationError):
        await engine.send_message(match_id, "mallory", "hi")


@pytest.mark.parametrize("bad_id", [0, -3])
async def test_malformed_match_id(engine, bad_id):
    with pytest.raises(ValidationError):
        await engine.send_message(bad_id, "alice", "hi")


async def test_concurrent_appends_get_distinct_increasing_seqs(engine, make_match):
    match_id = await make_match("alice", "bob")

    seqs = await asyncio.gather(
        *(engine.send_message(match_id, "alice" if i % 2 else "bob", f"message {i}") for i in range(20))
    )

    assert sorted(seqs) == list(range(1, 21))

    messages = await engine.conversations.list_messages(match_id)
    assert [m.seq for m in messages] == list(range(1, 21))
    assert sorted(m.content for m in messages) == sorted(f"message {i}" for i in range(20))


async def test_conversations_sequence_independently(engine, make_match):
    ab = await make_match("alice", "bob")
    ac = await make_match("alice", "carol")

    await engine.send_message(ab, "alice", "one")
    await engine.send_message(ab, "bob", "two")

    assert await engine.send_message(ac, "carol", "first here") == 1


async def test_list_messages_after_cursor_and_limit(engine, make_match):
    match_id = await make_match("alice", "bob")
    for i in range(5):
        await engine.send_message(match_id, "alice", f"m{i}")

    tail = await engine.conversations.list_messages(match_id, viewer_uid="bob", after_seq=3)
    head = await engine.conversations.list_messages(match_id, viewer_uid="bob", limit=2)

    assert [m.seq for m in tail] == [4, 5]
    assert [m.content for m in head] == ["m0", "m1"]


async def test_list_messages_checks_viewer(engine, make_match):
    match_id = await make_match("alice", "bob")

    with pytest.raises(AuthorizationError):
        await engine.conversations.list_messages(match_id, viewer_uid="mallory")

    with pytest.raises(NotFoundError):
        await engine.conversations.list_messages(match_id + 100)


async def test_publish_failure_keeps_committed_message(engine, make_match, notifier, monkeypatch, caplog):
    match_id = await make_match("alice", "bob")

    async def unavailable(key, kind, payload):
        raise TransientError("Storage temporarily unavailable (publish)")

    monkeypatch.setattr(notifier, "publish", unavailable)

    with caplog.at_level(logging.ERROR, logger="services.conversations"):
        seq = await engine.send_message(match_id, "alice", "still stored")

    assert seq == 1
    assert [m.content for m in await engine.conversations.list_messages(match_id)] == ["still stored"]
    [first, *_] = [r for r in caplog.records if r.name == "services.conversations"]
    assert first.msg == "Failed to publish %s on %s: %s"
    assert first.args[1] == f"conversation:{match_id}"
