from datetime import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from core.db import Base, utcnow


class Conversation(Base):
    """Conversation of a match. Holds the per-conversation sequence counter."""

    __tablename__ = "conversations"

    match_id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        ForeignKey("matches.id", ondelete="CASCADE"),
        primary_key=True,
    )
    last_seq: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<Conversation(match_id={self.match_id}, last_seq={self.last_seq})>"


class Message(Base):
    """Chat message, keyed by (match_id, seq)."""

    __tablename__ = "messages"

    match_id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        ForeignKey("conversations.match_id", ondelete="CASCADE"),
        primary_key=True,
    )
    seq: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    sender_uid: Mapped[str] = mapped_column(String(128), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)  # owned by the recipient

    __table_args__ = (Index("idx_messages_match_read", "match_id", "read"),)

    def to_dict(self) -> dict[str, object]:
        return {
            "match_id": self.match_id,
            "seq": self.seq,
            "sender_uid": self.sender_uid,
            "content": self.content,
            "created_at": self.created_at.isoformat(),
            "read": self.read,
        }

    def __repr__(self) -> str:
        return f"<Message(match_id={self.match_id}, seq={self.seq})>"
