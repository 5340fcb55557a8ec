from models.user import Profile
from services.inbox import UNKNOWN_PARTNER


async def test_empty_inbox(engine):
    assert await engine.inbox.list_conversations("alice") == []


async def test_inbox_orders_by_last_activity(engine, make_match, session_factory):
    async with session_factory() as db:
        db.add_all([Profile(uid="bob", nickname="Bob"), Profile(uid="carol", nickname="Carol")])
        await db.commit()

    ab = await make_match("alice", "bob")
    ac = await make_match("alice", "carol")
    ad = await make_match("alice", "dave")

    await engine.send_message(ab, "bob", "hi alice")
    await engine.send_message(ab, "bob", "you there?")
    await engine.send_message(ac, "alice", "hello carol")

    summaries = await engine.inbox.list_conversations("alice")

    assert [s.match_id for s in summaries] == [ac, ab, ad]

    carol, bob, dave = summaries
    assert (carol.partner_nickname, carol.last_message, carol.unread_count) == ("Carol", "hello carol", 0)
    assert (bob.partner_nickname, bob.last_message, bob.unread_count) == ("Bob", "you there?", 2)
    assert dave.partner_nickname == UNKNOWN_PARTNER
    assert dave.last_message is None
    assert dave.last_message_at is None
    assert dave.unread_count == 0


async def test_inbox_unread_counts_follow_reads(engine, make_match):
    match_id = await make_match("alice", "bob")
    await engine.send_message(match_id, "bob", "one")
    await engine.send_message(match_id, "bob", "two")

    [before] = await engine.inbox.list_conversations("alice")
    await engine.reads.mark_conversation_read(match_id, "alice")
    [after] = await engine.inbox.list_conversations("alice")
    [partner_view] = await engine.inbox.list_conversations("bob")

    assert before.unread_count == 2
    assert after.unread_count == 0
    assert partner_view.unread_count == 0
    assert partner_view.partner_uid == "alice"
