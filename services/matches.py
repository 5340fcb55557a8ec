"""Match resolver and match store."""

import logging
import time
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.errors import AuthorizationError, DomainError, NotFoundError, ValidationError, storage_errors
from core.metrics import match_resolve_duration, matches_created_total
from models.chat import Conversation
from models.like import Like
from models.match import Match, canonical_pair, make_pair_key
from services.notifier import MATCH_CREATED, Notifier, user_key
from services.validation import validate_match_id, validate_uid

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatchResult:
    """Outcome of a resolver run. ``created`` is True only for the winning caller."""

    created: bool
    matched: bool
    match_id: int | None = None


@dataclass(frozen=True)
class MatchView:
    match_id: int
    partner_uid: str
    created_at: datetime


async def load_match_for(db: AsyncSession, match_id: int, uid: str) -> Match:
    """
    Fetch a match and check ``uid`` takes part in it.

    Raises:
        NotFoundError: match does not exist
        AuthorizationError: uid is not one of the two members
    """
    validate_match_id(match_id)
    match = await db.get(Match, match_id)
    if match is None:
        raise NotFoundError("Match not found")
    if not match.has_member(uid):
        raise AuthorizationError("Not a participant of this match")
    return match


class MatchResolver:
    """Turns reciprocal likes into exactly one Match per pair."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], notifier: Notifier) -> None:
        self.session_factory = session_factory
        self.notifier = notifier

    async def try_create_match(self, a: str, b: str) -> MatchResult:
        """
        Create the Match for {a, b} if both likes exist and it is absent.

        The insert is guarded by the unique ``pair_key``: when two callers
        race on the same pair the loser hits the constraint, rolls back and
        reports the winner's row as already matched.
        """
        validate_uid(a)
        validate_uid(b)
        if a == b:
            raise ValidationError("Cannot match a user with themselves")

        uid_low, uid_high = canonical_pair(a, b)
        pair_key = make_pair_key(a, b)
        t0 = time.perf_counter()

        with storage_errors("try_create_match"):
            async with self.session_factory() as db:
                existing = await self._get_by_pair(db, pair_key)
                if existing is not None:
                    matches_created_total.labels(outcome="already_matched").inc()
                    return MatchResult(created=False, matched=True, match_id=existing.id)

                if not await self._reciprocal(db, uid_low, uid_high):
                    matches_created_total.labels(outcome="not_reciprocal").inc()
                    return MatchResult(created=False, matched=False)

                match = Match(pair_key=pair_key, uid_low=uid_low, uid_high=uid_high)
                db.add(match)
                try:
                    await db.flush()
                    # Conversation exists iff the match exists
                    db.add(Conversation(match_id=match.id, last_seq=0))
                    await db.commit()
                except IntegrityError:
                    await db.rollback()
                    existing = await self._get_by_pair(db, pair_key)
                    if existing is None:
                        raise
                    logger.info("Match for %s already created by a concurrent caller", pair_key)
                    matches_created_total.labels(outcome="already_matched").inc()
                    return MatchResult(created=False, matched=True, match_id=existing.id)

        match_resolve_duration.observe(time.perf_counter() - t0)
        matches_created_total.labels(outcome="created").inc()
        logger.info("Match created: id=%s pair=%s", match.id, pair_key)

        payload = {"match_id": match.id, "created_at": match.created_at.isoformat()}
        await self._announce(uid_low, {**payload, "partner_uid": uid_high})
        await self._announce(uid_high, {**payload, "partner_uid": uid_low})
        return MatchResult(created=True, matched=True, match_id=match.id)

    async def _announce(self, uid: str, payload: dict[str, object]) -> None:
        try:
            await self.notifier.publish(user_key(uid), MATCH_CREATED, payload)
        except DomainError as e:
            logger.error("Failed to publish match notification to user %s: %s", uid, e)

    @staticmethod
    async def _get_by_pair(db: AsyncSession, pair_key: str) -> Match | None:
        result = await db.execute(select(Match).where(Match.pair_key == pair_key))
        return result.scalar_one_or_none()

    @staticmethod
    async def _reciprocal(db: AsyncSession, uid_low: str, uid_high: str) -> bool:
        result = await db.execute(
            select(Like.from_uid).where(
                or_(
                    and_(Like.from_uid == uid_low, Like.to_uid == uid_high),
                    and_(Like.from_uid == uid_high, Like.to_uid == uid_low),
                )
            )
        )
        return len(result.all()) == 2


class MatchStore:
    """Read-only access to match records."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def get_match(self, pair_key: str) -> Match | None:
        with storage_errors("get_match"):
            async with self.session_factory() as db:
                result = await db.execute(select(Match).where(Match.pair_key == pair_key))
                return result.scalar_one_or_none()

    async def get_match_by_id(self, match_id: int) -> Match | None:
        validate_match_id(match_id)
        with storage_errors("get_match"):
            async with self.session_factory() as db:
                return await db.get(Match, match_id)

    async def list_matches_for(self, uid: str) -> list[MatchView]:
        """All matches containing ``uid``, newest first."""
        validate_uid(uid)
        with storage_errors("list_matches"):
            async with self.session_factory() as db:
                result = await db.execute(
                    select(Match)
                    .where(or_(Match.uid_low == uid, Match.uid_high == uid))
                    .order_by(Match.created_at.desc(), Match.id.desc())
                )
                matches = result.scalars().all()

        return [MatchView(match_id=m.id, partner_uid=m.partner_of(uid), created_at=m.created_at) for m in matches]
