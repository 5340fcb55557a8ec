"""Facade wiring the like ledger, resolver, conversation log and read tracker together."""

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.db import AsyncSessionLocal
from services.conversations import ConversationLog
from services.inbox import Inbox
from services.likes import LikeLedger
from services.matches import MatchResolver, MatchStore
from services.notifier import Notifier, notifier
from services.reads import ReadTracker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubmitLikeResult:
    liked: bool
    matched: bool
    match_id: int | None = None
    created: bool = False  # True when this call persisted a new like edge


class MatchingEngine:
    """Entry point for every operation exposed to presentation collaborators."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], notifier: Notifier) -> None:
        self.session_factory = session_factory
        self.notifier = notifier
        self.likes = LikeLedger(session_factory)
        self.resolver = MatchResolver(session_factory, notifier)
        self.matches = MatchStore(session_factory)
        self.conversations = ConversationLog(session_factory, notifier)
        self.reads = ReadTracker(session_factory, notifier)
        self.inbox = Inbox(session_factory)

    async def submit_like(self, from_uid: str, to_uid: str) -> SubmitLikeResult:
        """
        Record a like and resolve reciprocity for the pair.

        The resolver also runs when the like already existed, so a retry
        after a failure between the two steps still produces the match.
        """
        like = await self.likes.submit_like(from_uid, to_uid)
        result = await self.resolver.try_create_match(from_uid, to_uid)
        return SubmitLikeResult(liked=True, matched=result.matched, match_id=result.match_id, created=like.created)

    async def send_message(self, match_id: int, sender_uid: str, content: str) -> int:
        """Append a message; returns its seq, unique within the conversation."""
        message = await self.conversations.append_message(match_id, sender_uid, content)
        return message.seq


_engine: MatchingEngine | None = None


def get_engine() -> MatchingEngine:
    """Process-wide engine bound to the configured database and notifier."""
    global _engine
    if _engine is None:
        _engine = MatchingEngine(AsyncSessionLocal, notifier)
    return _engine
