"""Conversation list of a user, newest activity first."""

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.errors import storage_errors
from models.chat import Message
from models.match import Match
from models.user import Profile
from services.validation import validate_uid

UNKNOWN_PARTNER = "Unknown user"


@dataclass(frozen=True)
class ConversationSummary:
    match_id: int
    partner_uid: str
    partner_nickname: str
    last_message: str | None
    last_message_at: datetime | None
    unread_count: int


class Inbox:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def list_conversations(self, uid: str) -> list[ConversationSummary]:
        """
        Summaries of every conversation ``uid`` takes part in.

        Sorted by last message time descending; conversations without
        messages come last, newest match first among them.
        """
        validate_uid(uid)
        with storage_errors("list_conversations"):
            async with self.session_factory() as db:
                matches = await self._matches(db, uid)
                if not matches:
                    return []
                match_ids = [m.id for m in matches]
                last_messages = await self._last_messages(db, match_ids)
                unread = await self._unread_counts(db, match_ids, uid)
                nicknames = await self._nicknames(db, [m.partner_of(uid) for m in matches])

        summaries = []
        for match in matches:
            partner_uid = match.partner_of(uid)
            last = last_messages.get(match.id)
            summaries.append(
                ConversationSummary(
                    match_id=match.id,
                    partner_uid=partner_uid,
                    partner_nickname=nicknames.get(partner_uid, UNKNOWN_PARTNER),
                    last_message=last.content if last else None,
                    last_message_at=last.created_at if last else None,
                    unread_count=unread.get(match.id, 0),
                )
            )

        with_messages = [s for s in summaries if s.last_message_at is not None]
        without_messages = [s for s in summaries if s.last_message_at is None]
        with_messages.sort(key=lambda s: (s.last_message_at, s.match_id), reverse=True)
        return with_messages + without_messages

    @staticmethod
    async def _matches(db: AsyncSession, uid: str) -> list[Match]:
        result = await db.execute(
            select(Match)
            .where(or_(Match.uid_low == uid, Match.uid_high == uid))
            .order_by(Match.created_at.desc(), Match.id.desc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def _last_messages(db: AsyncSession, match_ids: list[int]) -> dict[int, Message]:
        latest = (
            select(Message.match_id, func.max(Message.seq).label("max_seq"))
            .where(Message.match_id.in_(match_ids))
            .group_by(Message.match_id)
            .subquery()
        )
        result = await db.execute(
            select(Message).join(
                latest, and_(Message.match_id == latest.c.match_id, Message.seq == latest.c.max_seq)
            )
        )
        return {m.match_id: m for m in result.scalars().all()}

    @staticmethod
    async def _unread_counts(db: AsyncSession, match_ids: list[int], uid: str) -> dict[int, int]:
        result = await db.execute(
            select(Message.match_id, func.count())
            .where(
                and_(
                    Message.match_id.in_(match_ids),
                    Message.sender_uid != uid,
                    Message.read.is_(False),
                )
            )
            .group_by(Message.match_id)
        )
        return {match_id: int(count) for match_id, count in result.all()}

    @staticmethod
    async def _nicknames(db: AsyncSession, uids: list[str]) -> dict[str, str]:
        result = await db.execute(select(Profile.uid, Profile.nickname).where(Profile.uid.in_(uids)))
        return {uid: nickname for uid, nickname in result.all()}
