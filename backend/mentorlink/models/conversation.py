# backend/mentorlink/models/conversation.py
"""
Conversation model for per-user-pair messaging.

Each unordered pair of users has exactly one conversation, identified by a
canonical key built from the two user ids. Design decisions:
- ``conversation_key`` carries a UNIQUE constraint so concurrent first
  messages resolve to one row (insert ... on conflict do nothing)
- participants are stored in canonical order (``participant_one_id`` sorts first)
- unread counters live in ``conversation_participants``, one row per participant,
  so increments and resets are single-row atomic updates
"""

from datetime import datetime, timezone
from typing import Tuple

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
import ulid

from ..database import Base

CONVERSATION_KEY_SEPARATOR = "_"


def canonical_pair(user_a: str, user_b: str) -> Tuple[str, str]:
    """Return the two ids in canonical (lexicographic) order."""
    return (user_a, user_b) if user_a <= user_b else (user_b, user_a)


def conversation_key_for(user_a: str, user_b: str) -> str:
    """
    Order-independent key for the pair.

    Ids must not contain the separator, otherwise two different pairs could
    join to the same key. ULIDs never do.
    """
    first, second = canonical_pair(user_a, user_b)
    return f"{first}{CONVERSATION_KEY_SEPARATOR}{second}"


class Conversation(Base):
    """
    Attributes:
        id: ULID primary key (the ``_id`` exposed to clients)
        conversation_key: canonical pair key shared by all messages in the conversation
        participant_one_id / participant_two_id: the pair in canonical order
        last_message_*: summary of the most recent message
        last_message_at: last activity timestamp used for list ordering
    """

    __tablename__ = "conversations"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    conversation_key = Column(String(64), nullable=False)
    participant_one_id = Column(
        String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    participant_two_id = Column(
        String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    last_message_content = Column(String(255), nullable=True)
    last_message_sender_id = Column(String(26), ForeignKey("users.id"), nullable=True)
    last_message_type = Column(String(16), nullable=True)
    last_message_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    participant_one = relationship("User", foreign_keys=[participant_one_id])
    participant_two = relationship("User", foreign_keys=[participant_two_id])
    last_message_sender = relationship("User", foreign_keys=[last_message_sender_id])
    participants = relationship(
        "ConversationParticipant",
        back_populates="conversation",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("conversation_key", name="uq_conversations_key"),
        Index("idx_conversations_participant_one", "participant_one_id"),
        Index("idx_conversations_participant_two", "participant_two_id"),
        Index("idx_conversations_last_message", "last_message_at"),
    )

    def __repr__(self) -> str:
        return f"<Conversation(id={self.id}, key={self.conversation_key})>"

    def get_other_user_id(self, current_user_id: str) -> str:
        if current_user_id == self.participant_one_id:
            return str(self.participant_two_id)
        return str(self.participant_one_id)

    def is_participant(self, user_id: str) -> bool:
        return user_id in (self.participant_one_id, self.participant_two_id)

    @property
    def last_activity_at(self) -> datetime:
        return self.last_message_at or self.created_at


class ConversationParticipant(Base):
    """Per-participant conversation state: the unread counter for that user."""

    __tablename__ = "conversation_participants"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    conversation_id = Column(
        String(26), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    unread_count = Column(Integer, nullable=False, default=0)
    last_read_at = Column(DateTime(timezone=True), nullable=True)

    conversation = relationship("Conversation", back_populates="participants")

    __table_args__ = (
        UniqueConstraint("conversation_id", "user_id", name="uq_conversation_participant"),
        Index("idx_conversation_participants_user", "user_id"),
    )
