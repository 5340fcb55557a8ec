from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from core.db import Base, utcnow


class Like(Base):
    """Directed like edge. Append-only, one row per ordered pair."""

    __tablename__ = "likes"

    from_uid: Mapped[str] = mapped_column(String(128), primary_key=True)
    to_uid: Mapped[str] = mapped_column(String(128), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("from_uid <> to_uid", name="chk_like_no_self"),
        Index("idx_likes_to_uid", "to_uid"),
    )

    def __repr__(self) -> str:
        return f"<Like(from_uid={self.from_uid}, to_uid={self.to_uid})>"
