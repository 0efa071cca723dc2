# src/athlinked/models/conversation.py
"""Models describing two-party conversations and their per-user state."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from athlinked.db.session import Base
from athlinked.db.time import utcnow


class Conversation(Base):
    """Conversation between exactly two users.

    The primary key is derived from the unordered participant pair, so the
    same two users always resolve to the same row regardless of who wrote
    first. ``user_low``/``user_high`` hold the pair in sorted order.
    """

    __tablename__ = "conversation"
    __table_args__ = (
        UniqueConstraint("user_low", "user_high", name="uq_conversation_pair"),
        CheckConstraint("user_low < user_high", name="ck_conversation_pair_sorted"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_low: Mapped[str] = mapped_column(String(128), nullable=False)
    user_high: Mapped[str] = mapped_column(String(128), nullable=False)

    last_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_message_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    # Highest sequence number handed out to a message in this conversation.
    message_seq: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    participants: Mapped[list[ConversationParticipant]] = relationship(
        "ConversationParticipant",
        back_populates="conversation",
        cascade="all, delete-orphan",
    )

    def includes(self, user_id: str) -> bool:
        """Return True if ``user_id`` is one of the two participants."""
        return user_id in (self.user_low, self.user_high)

    def other_participant(self, user_id: str) -> str:
        """Return the participant that is not ``user_id``."""
        return self.user_high if user_id == self.user_low else self.user_low


class ConversationParticipant(Base):
    """Per-user view of a conversation: unread counter and read watermark."""

    __tablename__ = "conversation_participant"
    __table_args__ = (
        CheckConstraint("unread_count >= 0", name="ck_participant_unread_non_negative"),
    )

    conversation_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("conversation.id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id: Mapped[str] = mapped_column(String(128), primary_key=True, index=True)
    unread_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_read_seq: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    conversation: Mapped[Conversation] = relationship("Conversation", back_populates="participants")
