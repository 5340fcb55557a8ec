from datetime import datetime

from sqlalchemy import BigInteger, CheckConstraint, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from core.db import Base, utcnow


def canonical_pair(a: str, b: str) -> tuple[str, str]:
    """Order two user ids lexicographically: (uid_low, uid_high)."""
    return (a, b) if a < b else (b, a)


def make_pair_key(a: str, b: str) -> str:
    """Deterministic identity of the unordered pair {a, b}."""
    uid_low, uid_high = canonical_pair(a, b)
    return f"{uid_low}:{uid_high}"


class Match(Base):
    """Canonical record of reciprocal likes between two users."""

    __tablename__ = "matches"

    # Integer on SQLite so the column aliases ROWID and autoincrements
    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    pair_key: Mapped[str] = mapped_column(String(257), unique=True, nullable=False)
    # Ordered pair for deduplication: uid_low < uid_high lexicographically
    uid_low: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    uid_high: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (CheckConstraint("uid_low < uid_high", name="chk_match_ordered_pair"),)

    def has_member(self, uid: str) -> bool:
        return uid in (self.uid_low, self.uid_high)

    def partner_of(self, uid: str) -> str:
        return self.uid_high if uid == self.uid_low else self.uid_low

    def __repr__(self) -> str:
        return f"<Match(id={self.id}, pair_key={self.pair_key})>"
