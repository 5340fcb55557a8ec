"""Reconciliation worker: repairs reciprocal likes left without a match."""

import asyncio
import logging

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import aliased

from core.config import settings
from core.db import AsyncSessionLocal
from core.errors import DomainError, TransientError, storage_errors
from core.logging_config import setup_logging
from core.metrics import matches_reconciled_total
from models.like import Like
from models.match import Match
from services.matches import MatchResolver
from services.notifier import Notifier, notifier

logger = logging.getLogger(__name__)


class MatchWorker:
    """
    Periodically drives the resolver for reciprocal like pairs with no match.

    A caller that crashes after committing its like but before the resolver
    ran leaves such a pair behind; this sweep restores the reciprocity law.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
        event_notifier: Notifier = notifier,
        interval: float | None = None,
        batch_size: int | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.resolver = MatchResolver(session_factory, event_notifier)
        self.interval = interval if interval is not None else settings.reconcile_interval_seconds
        self.batch_size = batch_size or settings.reconcile_batch_size
        self.running = False

    async def start(self) -> None:
        """Start the reconciliation loop."""
        self.running = True
        logger.info("Match worker started, sweeping every %ss", self.interval)

        while self.running:
            try:
                repaired = await self.run_once()
                if repaired:
                    logger.info("[WORKER] Repaired %s orphaned reciprocal pairs", repaired)
            except TransientError as e:
                logger.warning("[WORKER] Storage unavailable, retrying next sweep: %s", e)
            except Exception:
                logger.exception("[WORKER] Sweep failed, retrying next sweep")
            await asyncio.sleep(self.interval)

    async def stop(self) -> None:
        """Stop the match worker."""
        self.running = False

    async def run_once(self) -> int:
        """One sweep. Returns the number of matches this sweep created."""
        pairs = await self.find_orphaned_pairs()
        created = 0
        for uid_low, uid_high in pairs:
            try:
                result = await self.resolver.try_create_match(uid_low, uid_high)
            except DomainError as e:
                logger.error("[WORKER] Failed to reconcile pair %s:%s: %s", uid_low, uid_high, e)
                continue
            if result.created:
                created += 1
                matches_reconciled_total.inc()
        return created

    async def find_orphaned_pairs(self) -> list[tuple[str, str]]:
        """Reciprocal like pairs (uid_low, uid_high) that have no match row."""
        reverse = aliased(Like)
        with storage_errors("find_orphaned_pairs"):
            async with self.session_factory() as db:
                result = await db.execute(
                    select(Like.from_uid, Like.to_uid)
                    .join(reverse, and_(reverse.from_uid == Like.to_uid, reverse.to_uid == Like.from_uid))
                    .outerjoin(Match, and_(Match.uid_low == Like.from_uid, Match.uid_high == Like.to_uid))
                    .where(and_(Like.from_uid < Like.to_uid, Match.id.is_(None)))
                    .limit(self.batch_size)
                )
                return [(row[0], row[1]) for row in result.all()]


async def main() -> None:
    """Run match worker."""
    setup_logging()
    worker = MatchWorker()
    try:
        await worker.start()
    except KeyboardInterrupt:
        await worker.stop()
    finally:
        await notifier.close()


if __name__ == "__main__":
    asyncio.run(main())
