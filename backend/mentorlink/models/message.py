# backend/mentorlink/models/message.py
"""
Message model for the chat system.

Messages reference their conversation by canonical key. Soft delete is
tracked per user in ``message_deletions``; ``is_hidden`` is derived on write
once both participants have deleted the message, and the row is never removed.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.types import JSON as SAJSON
import ulid

from ..database import Base

MESSAGE_TYPE_TEXT = "text"
MESSAGE_TYPE_IMAGE = "image"
MESSAGE_TYPE_VIDEO = "video"
MESSAGE_TYPE_AUDIO = "audio"
MESSAGE_TYPE_FILE = "file"

MESSAGE_TYPES = (
    MESSAGE_TYPE_TEXT,
    MESSAGE_TYPE_IMAGE,
    MESSAGE_TYPE_VIDEO,
    MESSAGE_TYPE_AUDIO,
    MESSAGE_TYPE_FILE,
)

# Both participants deleting a message hides it for everyone
HIDE_AFTER_DELETIONS = 2


class Message(Base):
    __tablename__ = "messages"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    conversation_key = Column(
        String(64),
        ForeignKey("conversations.conversation_key", ondelete="CASCADE"),
        nullable=False,
    )
    sender_id = Column(String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    recipient_id = Column(String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    content = Column(Text, nullable=True)
    message_type = Column(String(16), nullable=False, default=MESSAGE_TYPE_TEXT)
    # Array of { url, public_id, name, format, type, mime_type, size }, snake_case keys
    attachments = Column(SAJSON, nullable=False, default=list)
    is_read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime(timezone=True), nullable=True)
    is_hidden = Column(Boolean, nullable=False, default=False)
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    sender = relationship("User", foreign_keys=[sender_id])
    recipient = relationship("User", foreign_keys=[recipient_id])
    deletions = relationship(
        "MessageDeletion", back_populates="message", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("idx_messages_conversation_created", "conversation_key", "created_at"),
        Index("idx_messages_recipient_unread", "recipient_id", "sender_id", "is_read"),
    )

    def __repr__(self) -> str:
        return f"<Message(id={self.id}, key={self.conversation_key}, type={self.message_type})>"

    @property
    def deleted_by(self) -> set[str]:
        return {deletion.user_id for deletion in self.deletions}

    def is_participant(self, user_id: str) -> bool:
        return user_id in (self.sender_id, self.recipient_id)

    def preview_label(self, max_length: int) -> str:
        """Conversation-list snippet: text content or a media-type label."""
        if self.message_type == MESSAGE_TYPE_TEXT:
            return (self.content or "")[:max_length]
        return f"Sent a {self.message_type}"


class MessageDeletion(Base):
    """One row per user who has deleted a message for themselves."""

    __tablename__ = "message_deletions"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    message_id = Column(String(26), ForeignKey("messages.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    deleted_at = Column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    message = relationship("Message", back_populates="deletions")

    __table_args__ = (
        UniqueConstraint("message_id", "user_id", name="uq_message_deletion_user"),
        Index("idx_message_deletions_user", "user_id"),
    )
