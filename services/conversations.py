"""Conversation log: per-match ordered messages with a serializing sequence authority."""

import logging
from collections.abc import AsyncGenerator

from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.config import settings
from core.errors import DomainError, NotFoundError, storage_errors
from core.metrics import messages_sent_total
from models.chat import Conversation, Message
from services.matches import load_match_for
from services.notifier import MESSAGE_CREATED, Notifier, conversation_key, user_key
from services.validation import clean_content, validate_match_id, validate_uid

logger = logging.getLogger(__name__)


class ConversationLog:
    """Append and read ordered messages of a match's conversation."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: Notifier,
        max_length: int | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.notifier = notifier
        self.max_length = max_length or settings.message_max_length

    async def append_message(self, match_id: int, sender_uid: str, content: str) -> Message:
        """
        Append a message and assign it the next sequence number.

        The counter row of the conversation is incremented with a single
        UPDATE ... RETURNING inside the same transaction as the insert, so
        concurrent senders are serialized on that row and never share or
        reverse a seq. Different conversations do not contend.

        Raises:
            ValidationError: empty or oversized content, malformed ids
            NotFoundError: match does not exist
            AuthorizationError: sender is not a member of the match
        """
        body = clean_content(content, self.max_length)
        validate_uid(sender_uid)

        with storage_errors("append_message"):
            async with self.session_factory() as db:
                match = await load_match_for(db, match_id, sender_uid)

                result = await db.execute(
                    update(Conversation)
                    .where(Conversation.match_id == match_id)
                    .values(last_seq=Conversation.last_seq + 1)
                    .returning(Conversation.last_seq)
                )
                seq = result.scalar_one_or_none()
                if seq is None:
                    await db.rollback()
                    raise NotFoundError("Conversation not found")

                message = Message(match_id=match_id, seq=seq, sender_uid=sender_uid, content=body, read=False)
                db.add(message)
                await db.commit()

        messages_sent_total.inc()
        logger.debug("Message appended: match=%s seq=%s", match_id, seq)

        event = message.to_dict()
        await self._publish(conversation_key(match_id), event)
        await self._publish(user_key(match.partner_of(sender_uid)), event)
        return message

    async def _publish(self, key: str, payload: dict[str, object]) -> None:
        try:
            await self.notifier.publish(key, MESSAGE_CREATED, payload)
        except DomainError as e:
            # Message is committed; subscribers still catch up from storage
            logger.error("Failed to publish %s on %s: %s", MESSAGE_CREATED, key, e)

    async def list_messages(
        self,
        match_id: int,
        viewer_uid: str | None = None,
        after_seq: int = 0,
        limit: int | None = None,
    ) -> list[Message]:
        """Messages with seq > after_seq, ascending by seq."""
        with storage_errors("list_messages"):
            async with self.session_factory() as db:
                await self._check_access(db, match_id, viewer_uid)
                return await self._messages_after(db, match_id, after_seq, limit)

    async def subscribe(
        self, match_id: int, since_seq: int = 0, viewer_uid: str | None = None
    ) -> AsyncGenerator[list[Message], None]:
        """
        Yield ordered batches of messages with seq > since_seq, forever.

        The notifier subscription is opened before the catch-up read so
        nothing committed in between is lost. Every live event only acts as
        a wake-up: the batch itself is re-read from storage after the last
        delivered seq, which closes any gap and keeps delivery ordered.
        Closing the iterator releases the subscription.
        """
        with storage_errors("subscribe_messages"):
            async with self.session_factory() as db:
                await self._check_access(db, match_id, viewer_uid)

        cursor = max(since_seq, 0)
        async with self.notifier.subscribe(conversation_key(match_id)) as events:
            batch = await self._read_after(match_id, cursor)
            if batch:
                cursor = batch[-1].seq
                yield batch

            async for event in events:
                if event.kind != MESSAGE_CREATED or int(event.payload.get("seq", 0)) <= cursor:
                    continue
                batch = await self._read_after(match_id, cursor)
                if batch:
                    cursor = batch[-1].seq
                    yield batch

    async def _read_after(self, match_id: int, cursor: int) -> list[Message]:
        with storage_errors("subscribe_messages"):
            async with self.session_factory() as db:
                return await self._messages_after(db, match_id, cursor)

    @staticmethod
    async def _check_access(db: AsyncSession, match_id: int, viewer_uid: str | None) -> None:
        if viewer_uid is not None:
            await load_match_for(db, match_id, viewer_uid)
            return
        validate_match_id(match_id)
        if await db.get(Conversation, match_id) is None:
            raise NotFoundError("Conversation not found")

    @staticmethod
    async def _messages_after(
        db: AsyncSession, match_id: int, after_seq: int, limit: int | None = None
    ) -> list[Message]:
        query = (
            select(Message)
            .where(and_(Message.match_id == match_id, Message.seq > after_seq))
            .order_by(Message.seq.asc())
        )
        if limit is not None:
            query = query.limit(limit)
        result = await db.execute(query)
        return list(result.scalars().all())
