# backend/mentorlink/repositories/conversation_repository.py
"""
Conversation Repository for per-user-pair messaging.

Creation is an atomic upsert keyed on the canonical conversation key, and
unread counters are changed with single UPDATE statements, so concurrent
senders across instances never create duplicate conversations or lose
increments.
"""

from datetime import datetime, timezone
from typing import Collection, List, Optional, Tuple, cast

from sqlalchemy import and_, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session, joinedload, selectinload
import ulid

from ..core.exceptions import RepositoryException
from ..database.session_utils import dialect_insert
from ..models.conversation import (
    Conversation,
    ConversationParticipant,
    canonical_pair,
    conversation_key_for,
)
from .base_repository import BaseRepository


class ConversationRepository(BaseRepository[Conversation]):
    """
    Repository for Conversation entity operations.

    Handles:
    - Finding or creating the conversation for a user pair
    - Listing conversations for a user
    - Last-message summary and unread counter updates
    """

    def __init__(self, db: Session):
        super().__init__(db, Conversation)

    def _apply_eager_loading(self, query: Query) -> Query:
        return query.options(
            joinedload(Conversation.participant_one),
            joinedload(Conversation.participant_two),
            joinedload(Conversation.last_message_sender),
            selectinload(Conversation.participants),
        )

    def find_by_key(self, conversation_key: str) -> Optional[Conversation]:
        try:
            query = self.db.query(Conversation).filter(
                Conversation.conversation_key == conversation_key
            )
            return cast(Optional[Conversation], self._apply_eager_loading(query).first())
        except SQLAlchemyError as e:
            self.logger.error(f"Error finding conversation {conversation_key}: {str(e)}")
            raise RepositoryException(f"Failed to retrieve conversation: {str(e)}")

    def find_by_pair(self, user_a: str, user_b: str) -> Optional[Conversation]:
        return self.find_by_key(conversation_key_for(user_a, user_b))

    def find_or_create(self, user_a: str, user_b: str) -> Tuple[Conversation, bool]:
        """
        Get the pair's conversation, creating it if needed.

        Uses INSERT ... ON CONFLICT DO NOTHING on the unique key and then
        reads the row back, so concurrent callers all return the same
        conversation and exactly one of them reports ``created=True``.
        Participant rows are upserted the same way.

        Returns:
            Tuple of (conversation, created)
        """
        first, second = canonical_pair(user_a, user_b)
        key = conversation_key_for(first, second)
        now = datetime.now(timezone.utc)
        try:
            stmt = (
                dialect_insert(self.db, Conversation.__table__)
                .values(
                    id=str(ulid.ULID()),
                    conversation_key=key,
                    participant_one_id=first,
                    participant_two_id=second,
                    created_at=now,
                    updated_at=now,
                )
                .on_conflict_do_nothing(index_elements=["conversation_key"])
            )
            created = self.db.execute(stmt).rowcount == 1

            conversation_id = (
                self.db.query(Conversation.id)
                .filter(Conversation.conversation_key == key)
                .scalar()
            )
            if conversation_id is None:
                raise RepositoryException(f"Conversation {key} missing after upsert")

            participant_stmt = (
                dialect_insert(self.db, ConversationParticipant.__table__)
                .values(
                    [
                        {
                            "id": str(ulid.ULID()),
                            "conversation_id": conversation_id,
                            "user_id": user_id,
                            "unread_count": 0,
                        }
                        for user_id in (first, second)
                    ]
                )
                .on_conflict_do_nothing(index_elements=["conversation_id", "user_id"])
            )
            self.db.execute(participant_stmt)
        except SQLAlchemyError as e:
            self.logger.error(f"Error upserting conversation {key}: {str(e)}")
            raise RepositoryException(f"Failed to find or create conversation: {str(e)}")

        conversation = self.find_by_key(key)
        if conversation is None:
            raise RepositoryException(f"Conversation {key} missing after upsert")
        return conversation, created

    def record_message_sent(
        self,
        conversation_id: str,
        *,
        recipient_id: str,
        sender_id: str,
        preview: str,
        message_type: str,
        sent_at: datetime,
    ) -> None:
        """
        Update the last-message summary and bump the recipient's unread counter.

        The summary only moves forward in time; the counter is incremented
        in SQL (``unread_count = unread_count + 1``).
        """
        try:
            (
                self.db.query(Conversation)
                .filter(
                    Conversation.id == conversation_id,
                    or_(
                        Conversation.last_message_at.is_(None),
                        Conversation.last_message_at <= sent_at,
                    ),
                )
                .update(
                    {
                        Conversation.last_message_content: preview,
                        Conversation.last_message_sender_id: sender_id,
                        Conversation.last_message_type: message_type,
                        Conversation.last_message_at: sent_at,
                        Conversation.updated_at: datetime.now(timezone.utc),
                    },
                    synchronize_session="fetch",
                )
            )
            updated = (
                self.db.query(ConversationParticipant)
                .filter(
                    ConversationParticipant.conversation_id == conversation_id,
                    ConversationParticipant.user_id == recipient_id,
                )
                .update(
                    {ConversationParticipant.unread_count: ConversationParticipant.unread_count + 1},
                    synchronize_session="fetch",
                )
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error recording message for {conversation_id}: {str(e)}")
            raise RepositoryException(f"Failed to update conversation: {str(e)}")

        if updated != 1:
            raise RepositoryException(
                f"Recipient {recipient_id} is not a participant of {conversation_id}"
            )

    def reset_unread(self, conversation_id: str, reader_id: str) -> int:
        """Set the reader's unread counter to zero; returns rows touched."""
        try:
            return (
                self.db.query(ConversationParticipant)
                .filter(
                    ConversationParticipant.conversation_id == conversation_id,
                    ConversationParticipant.user_id == reader_id,
                )
                .update(
                    {
                        ConversationParticipant.unread_count: 0,
                        ConversationParticipant.last_read_at: datetime.now(timezone.utc),
                    },
                    synchronize_session="fetch",
                )
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error resetting unread for {conversation_id}: {str(e)}")
            raise RepositoryException(f"Failed to reset unread counter: {str(e)}")

    def get_unread_count(self, conversation_id: str, user_id: str) -> int:
        try:
            value = (
                self.db.query(ConversationParticipant.unread_count)
                .filter(
                    ConversationParticipant.conversation_id == conversation_id,
                    ConversationParticipant.user_id == user_id,
                )
                .scalar()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error reading unread count: {str(e)}")
            raise RepositoryException(f"Failed to read unread count: {str(e)}")
        return int(value or 0)

    def find_for_user(
        self,
        user_id: str,
        *,
        other_user_ids: Optional[Collection[str]] = None,
        limit: int = 50,
    ) -> List[Conversation]:
        """
        Conversations where ``user_id`` participates, most recent activity first.

        Args:
            user_id: The participant
            other_user_ids: When given, only conversations whose other
                participant is in this collection are returned
            limit: Maximum number of conversations
        """
        if other_user_ids is not None and not other_user_ids:
            return []

        if other_user_ids is None:
            participant_filter = or_(
                Conversation.participant_one_id == user_id,
                Conversation.participant_two_id == user_id,
            )
        else:
            others = list(other_user_ids)
            participant_filter = or_(
                and_(
                    Conversation.participant_one_id == user_id,
                    Conversation.participant_two_id.in_(others),
                ),
                and_(
                    Conversation.participant_two_id == user_id,
                    Conversation.participant_one_id.in_(others),
                ),
            )

        try:
            query = self._apply_eager_loading(
                self.db.query(Conversation).filter(participant_filter)
            )
            query = query.order_by(
                func.coalesce(Conversation.last_message_at, Conversation.created_at).desc(),
                Conversation.id.desc(),
            )
            return cast(List[Conversation], query.limit(limit).all())
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing conversations for {user_id}: {str(e)}")
            raise RepositoryException(f"Failed to list conversations: {str(e)}")

    def total_unread_for_user(self, user_id: str) -> int:
        try:
            total = (
                self.db.query(func.coalesce(func.sum(ConversationParticipant.unread_count), 0))
                .filter(ConversationParticipant.user_id == user_id)
                .scalar()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error summing unread for {user_id}: {str(e)}")
            raise RepositoryException(f"Failed to count unread messages: {str(e)}")
        return int(total or 0)
