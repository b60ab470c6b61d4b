# backend/mentorlink/repositories/message_repository.py
"""
Message Repository for the chat system.

Handles the durable message log: appends, per-viewer history pages,
bulk read receipts, per-user soft delete and content search.
"""

from datetime import datetime, timezone
from typing import List, Optional, cast

from sqlalchemy import and_, exists, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session, joinedload
import ulid

from ..core.exceptions import RepositoryException
from ..database.session_utils import dialect_insert
from ..models.message import HIDE_AFTER_DELETIONS, Message, MessageDeletion
from .base_repository import BaseRepository


class MessageRepository(BaseRepository[Message]):
    """Repository for message data access."""

    def __init__(self, db: Session):
        super().__init__(db, Message)

    def _apply_eager_loading(self, query: Query) -> Query:
        return query.options(
            joinedload(Message.sender),
            joinedload(Message.recipient),
        )

    @staticmethod
    def _escape_like_pattern(value: str) -> str:
        """Escape special LIKE pattern characters to prevent pattern injection."""
        return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")

    @staticmethod
    def _not_deleted_by(user_id: str):
        return ~exists().where(
            and_(
                MessageDeletion.message_id == Message.id,
                MessageDeletion.user_id == user_id,
            )
        )

    def create_message(
        self,
        *,
        conversation_key: str,
        sender_id: str,
        recipient_id: str,
        message_type: str,
        content: Optional[str],
        attachments: Optional[list] = None,
    ) -> Message:
        """Append a message and return it with sender/recipient loaded."""
        message = self.create(
            conversation_key=conversation_key,
            sender_id=sender_id,
            recipient_id=recipient_id,
            message_type=message_type,
            content=content,
            attachments=list(attachments or []),
            created_at=datetime.now(timezone.utc),
        )
        self.db.refresh(message, attribute_names=["sender", "recipient"])
        return message

    def get_for_update(self, message_id: str) -> Optional[Message]:
        """Load a message and lock its row where the dialect supports it."""
        try:
            return cast(
                Optional[Message],
                self.db.query(Message)
                .filter(Message.id == message_id)
                .with_for_update()
                .first(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error locking message {message_id}: {str(e)}")
            raise RepositoryException(f"Failed to retrieve message: {str(e)}")

    def list_for_conversation(
        self,
        conversation_key: str,
        viewer_id: str,
        *,
        limit: int = 50,
        before: Optional[datetime] = None,
    ) -> List[Message]:
        """
        One page of history as seen by ``viewer_id``, oldest first.

        Hidden messages and messages the viewer deleted are excluded. The
        query walks newest-first so ``before`` pages backwards, then the
        page is reversed for display.
        """
        try:
            query = self.db.query(Message).filter(
                Message.conversation_key == conversation_key,
                Message.is_hidden.is_(False),
                self._not_deleted_by(viewer_id),
            )
            if before is not None:
                query = query.filter(Message.created_at < before)

            page = (
                self._apply_eager_loading(query)
                .order_by(Message.created_at.desc(), Message.id.desc())
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing messages for {conversation_key}: {str(e)}")
            raise RepositoryException(f"Failed to list messages: {str(e)}")

        page.reverse()
        return cast(List[Message], page)

    def mark_many_read(
        self,
        conversation_key: str,
        recipient_id: str,
        sender_id: str,
        read_at: Optional[datetime] = None,
    ) -> int:
        """Flip unread messages from ``sender_id`` to ``recipient_id``; returns the count."""
        try:
            return (
                self.db.query(Message)
                .filter(
                    Message.conversation_key == conversation_key,
                    Message.recipient_id == recipient_id,
                    Message.sender_id == sender_id,
                    Message.is_read.is_(False),
                )
                .update(
                    {
                        Message.is_read: True,
                        Message.read_at: read_at or datetime.now(timezone.utc),
                    },
                    synchronize_session="fetch",
                )
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error marking messages read: {str(e)}")
            raise RepositoryException(f"Failed to mark messages read: {str(e)}")

    def add_deletion(self, message: Message, user_id: str) -> bool:
        """
        Record that ``user_id`` deleted ``message`` for themselves.

        Deleting twice is a no-op. Once the deleted-by set reaches both
        participants the message's ``is_hidden`` flag is set. Callers should
        hold the row lock from :meth:`get_for_update`.

        Returns:
            The message's hidden state after the write
        """
        try:
            stmt = (
                dialect_insert(self.db, MessageDeletion.__table__)
                .values(
                    id=str(ulid.ULID()),
                    message_id=message.id,
                    user_id=user_id,
                    deleted_at=datetime.now(timezone.utc),
                )
                .on_conflict_do_nothing(index_elements=["message_id", "user_id"])
            )
            self.db.execute(stmt)

            deleter_count = (
                self.db.query(MessageDeletion)
                .filter(MessageDeletion.message_id == message.id)
                .count()
            )
            if deleter_count >= HIDE_AFTER_DELETIONS and not message.is_hidden:
                message.is_hidden = True
            self.db.flush()
            self.db.expire(message, ["deletions"])
        except SQLAlchemyError as e:
            self.logger.error(f"Error deleting message {message.id}: {str(e)}")
            raise RepositoryException(f"Failed to delete message: {str(e)}")
        return bool(message.is_hidden)

    def search_for_user(self, user_id: str, query_text: str, limit: int = 50) -> List[Message]:
        """Case-insensitive content match over the user's visible messages, newest first."""
        needle = self._escape_like_pattern(query_text)
        try:
            query = self.db.query(Message).filter(
                or_(Message.sender_id == user_id, Message.recipient_id == user_id),
                Message.is_hidden.is_(False),
                self._not_deleted_by(user_id),
                Message.content.ilike(f"%{needle}%", escape="\\"),
            )
            return cast(
                List[Message],
                self._apply_eager_loading(query)
                .order_by(Message.created_at.desc(), Message.id.desc())
                .limit(limit)
                .all(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error searching messages for {user_id}: {str(e)}")
            raise RepositoryException(f"Failed to search messages: {str(e)}")

    def deleted_by(self, message_id: str) -> set[str]:
        rows = (
            self.db.query(MessageDeletion.user_id)
            .filter(MessageDeletion.message_id == message_id)
            .all()
        )
        return {row[0] for row in rows}
