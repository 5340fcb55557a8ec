"""Read tracker: per-message read flags and unread counts."""

import logging

from sqlalchemy import and_, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.errors import DomainError, storage_errors
from core.metrics import messages_marked_read_total
from models.chat import Message
from services.matches import load_match_for
from services.notifier import CONVERSATION_READ, Notifier, user_key
from services.validation import validate_uid

logger = logging.getLogger(__name__)


class ReadTracker:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], notifier: Notifier) -> None:
        self.session_factory = session_factory
        self.notifier = notifier

    async def mark_conversation_read(self, match_id: int, viewer_uid: str) -> int:
        """
        Flip every unread message from the partner to read.

        One conditional UPDATE committed as a single transaction: observers
        see the unread count before or after the call, never in between.
        Repeated or overlapping calls only touch rows still unread, and the
        flag never goes back to false.

        Returns:
            Number of messages that changed state
        """
        validate_uid(viewer_uid)
        with storage_errors("mark_conversation_read"):
            async with self.session_factory() as db:
                match = await load_match_for(db, match_id, viewer_uid)
                result = await db.execute(
                    update(Message)
                    .where(
                        and_(
                            Message.match_id == match_id,
                            Message.sender_uid != viewer_uid,
                            Message.read.is_(False),
                        )
                    )
                    .values(read=True)
                    .execution_options(synchronize_session=False)
                )
                await db.commit()
                changed = result.rowcount or 0

        if changed:
            messages_marked_read_total.inc(changed)
            try:
                await self.notifier.publish(
                    user_key(match.partner_of(viewer_uid)),
                    CONVERSATION_READ,
                    {"match_id": match_id, "reader_uid": viewer_uid, "count": changed},
                )
            except DomainError as e:
                logger.error("Failed to publish read receipt for match %s: %s", match_id, e)
        return changed

    async def unread_count(self, match_id: int, viewer_uid: str) -> int:
        """Messages in the conversation not sent by the viewer and still unread."""
        validate_uid(viewer_uid)
        with storage_errors("unread_count"):
            async with self.session_factory() as db:
                await load_match_for(db, match_id, viewer_uid)
                return await self.count_unread(db, match_id, viewer_uid)

    @staticmethod
    async def count_unread(db: AsyncSession, match_id: int, viewer_uid: str) -> int:
        result = await db.execute(
            select(func.count())
            .select_from(Message)
            .where(
                and_(
                    Message.match_id == match_id,
                    Message.sender_uid != viewer_uid,
                    Message.read.is_(False),
                )
            )
        )
        return int(result.scalar_one())
