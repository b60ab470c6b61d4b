# backend/mentorlink/services/conversation_service.py
"""
Conversation store: canonical conversation identity, last-message summary
and per-participant unread counters.

Methods here never commit. They run inside the caller's transaction so a
send can persist the conversation, the message and the counter update as
one unit.
"""

from dataclasses import dataclass
from typing import Collection, List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import ValidationException
from ..models.conversation import (
    CONVERSATION_KEY_SEPARATOR,
    Conversation,
    conversation_key_for,
)
from ..models.message import Message
from ..repositories.conversation_repository import ConversationRepository
from ..repositories.factory import RepositoryFactory
from .base import BaseService


@dataclass
class ConversationSummary:
    """A conversation as seen by one participant."""

    conversation: Conversation
    other_user_id: str
    unread_count: int


def validate_user_id(user_id: Optional[str], field: str = "userId") -> str:
    if not user_id or not user_id.strip():
        raise ValidationException(f"{field} is required", code="INVALID_USER_ID")
    if CONVERSATION_KEY_SEPARATOR in user_id:
        raise ValidationException(f"{field} is not a valid user id", code="INVALID_USER_ID")
    return user_id


def build_conversation_key(user_a: str, user_b: str) -> str:
    """Canonical key for the unordered pair; identical for (a, b) and (b, a)."""
    validate_user_id(user_a)
    validate_user_id(user_b)
    return conversation_key_for(user_a, user_b)


class ConversationService(BaseService):
    def __init__(self, db: Session):
        super().__init__(db)
        self.repository: ConversationRepository = RepositoryFactory.create_conversation_repository(
            db
        )

    @BaseService.measure_operation("find_or_create")
    def find_or_create(self, user_a: str, user_b: str) -> Conversation:
        build_conversation_key(user_a, user_b)
        if user_a == user_b:
            raise ValidationException("Cannot start a conversation with yourself", code="SELF_MESSAGE")

        conversation, created = self.repository.find_or_create(user_a, user_b)
        if created:
            self.logger.info(
                "[MSG] Conversation created",
                extra={"conversation_id": conversation.id, "key": conversation.conversation_key},
            )
        return conversation

    def get_by_pair(self, user_a: str, user_b: str) -> Optional[Conversation]:
        return self.repository.find_by_key(build_conversation_key(user_a, user_b))

    @BaseService.measure_operation("record_message_sent")
    def record_message_sent(
        self, conversation_id: str, message: Message, recipient_id: str
    ) -> None:
        self.repository.record_message_sent(
            conversation_id,
            recipient_id=recipient_id,
            sender_id=message.sender_id,
            preview=message.preview_label(settings.last_message_preview_length),
            message_type=message.message_type,
            sent_at=message.created_at,
        )

    @BaseService.measure_operation("mark_conversation_read")
    def mark_read(self, conversation_id: str, reader_id: str) -> None:
        self.repository.reset_unread(conversation_id, reader_id)

    @BaseService.measure_operation("list_conversations_for_user")
    def list_for_user(
        self,
        user_id: str,
        eligible_user_ids: Collection[str],
        limit: Optional[int] = None,
    ) -> List[ConversationSummary]:
        """
        The user's conversations with currently-eligible partners, newest
        activity first. Conversations with revoked connections persist but
        are not listed.
        """
        conversations = self.repository.find_for_user(
            user_id,
            other_user_ids=eligible_user_ids,
            limit=limit or settings.conversation_list_limit,
        )
        summaries: List[ConversationSummary] = []
        for conversation in conversations:
            unread = next(
                (p.unread_count for p in conversation.participants if p.user_id == user_id),
                0,
            )
            summaries.append(
                ConversationSummary(
                    conversation=conversation,
                    other_user_id=conversation.get_other_user_id(user_id),
                    unread_count=int(unread or 0),
                )
            )
        return summaries

    def get_unread_count(self, conversation_id: str, user_id: str) -> int:
        return self.repository.get_unread_count(conversation_id, user_id)

    @BaseService.measure_operation("get_unread_total")
    def get_unread_total(self, user_id: str) -> int:
        return self.repository.total_unread_for_user(user_id)
