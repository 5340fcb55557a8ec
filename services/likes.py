"""Like ledger: append-only directed like edges, deduplicated per ordered pair."""

import logging
from dataclasses import dataclass

from sqlalchemy import and_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.errors import ValidationError, storage_errors
from core.metrics import likes_submitted_total
from models.like import Like
from services.validation import validate_uid

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LikeResult:
    like: Like
    created: bool


class LikeLedger:
    """Store of directed like edges."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def submit_like(self, from_uid: str, to_uid: str) -> LikeResult:
        """
        Persist Like(from_uid, to_uid) unless it already exists.

        Re-liking is not an error: the existing edge is reported with
        ``created=False``.

        Raises:
            ValidationError: self-like or malformed id
        """
        validate_uid(from_uid)
        validate_uid(to_uid)
        if from_uid == to_uid:
            raise ValidationError("Cannot like yourself")

        with storage_errors("submit_like"):
            async with self.session_factory() as db:
                existing = await db.get(Like, (from_uid, to_uid))
                if existing is not None:
                    likes_submitted_total.labels(outcome="duplicate").inc()
                    return LikeResult(like=existing, created=False)

                like = Like(from_uid=from_uid, to_uid=to_uid)
                db.add(like)
                try:
                    await db.commit()
                except IntegrityError:
                    # Concurrent submit of the same edge won the insert
                    await db.rollback()
                    existing = await db.get(Like, (from_uid, to_uid))
                    if existing is None:
                        raise
                    likes_submitted_total.labels(outcome="duplicate").inc()
                    return LikeResult(like=existing, created=False)

        logger.info("Like recorded: %s -> %s", from_uid, to_uid)
        likes_submitted_total.labels(outcome="created").inc()
        return LikeResult(like=like, created=True)

    async def has_like(self, from_uid: str, to_uid: str) -> bool:
        with storage_errors("has_like"):
            async with self.session_factory() as db:
                return await self._exists(db, from_uid, to_uid)

    @staticmethod
    async def _exists(db: AsyncSession, from_uid: str, to_uid: str) -> bool:
        result = await db.execute(
            select(Like.from_uid).where(and_(Like.from_uid == from_uid, Like.to_uid == to_uid))
        )
        return result.first() is not None

    async def list_incoming(self, uid: str) -> list[str]:
        """Users who liked ``uid``, newest first."""
        validate_uid(uid)
        with storage_errors("list_incoming_likes"):
            async with self.session_factory() as db:
                result = await db.execute(
                    select(Like.from_uid).where(Like.to_uid == uid).order_by(Like.created_at.desc(), Like.from_uid)
                )
                return list(result.scalars().all())

    async def list_outgoing(self, uid: str) -> list[str]:
        """Users ``uid`` liked, newest first."""
        validate_uid(uid)
        with storage_errors("list_outgoing_likes"):
            async with self.session_factory() as db:
                result = await db.execute(
                    select(Like.to_uid).where(Like.from_uid == uid).order_by(Like.created_at.desc(), Like.to_uid)
                )
                return list(result.scalars().all())
