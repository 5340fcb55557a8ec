import asyncio

import pytest
from sqlalchemy import func, select

from core.errors import ValidationError
from models.like import Like


async def _like_count(session_factory) -> int:
    async with session_factory() as db:
        return (await db.execute(select(func.count()).select_from(Like))).scalar_one()


async def test_self_like_is_rejected(engine):
    with pytest.raises(ValidationError):
        await engine.likes.submit_like("alice", "alice")


@pytest.mark.parametrize("bad_uid", ["", "has space", "a:b", "x" * 129])
async def test_malformed_uid_is_rejected(engine, bad_uid):
    with pytest.raises(ValidationError):
        await engine.likes.submit_like("alice", bad_uid)


async def test_like_is_idempotent(engine, session_factory):
    first = await engine.submit_like("alice", "bob")
    second = await engine.submit_like("alice", "bob")

    assert first.liked and first.created
    assert second.liked and not second.created
    assert await _like_count(session_factory) == 1


async def test_concurrent_duplicate_likes_store_one_edge(engine, session_factory):
    results = await asyncio.gather(*(engine.likes.submit_like("alice", "bob") for _ in range(5)))

    assert sum(r.created for r in results) == 1
    assert await _like_count(session_factory) == 1


async def test_has_like_is_directed(engine):
    await engine.likes.submit_like("alice", "bob")

    assert await engine.likes.has_like("alice", "bob")
    assert not await engine.likes.has_like("bob", "alice")


async def test_incoming_and_outgoing_lists(engine):
    await engine.likes.submit_like("alice", "bob")
    await engine.likes.submit_like("carol", "bob")
    await engine.likes.submit_like("bob", "dave")

    assert sorted(await engine.likes.list_incoming("bob")) == ["alice", "carol"]
    assert await engine.likes.list_outgoing("bob") == ["dave"]
    assert await engine.likes.list_incoming("dave") == ["bob"]
    assert await engine.likes.list_outgoing("erin") == []
