# backend/mentorlink/services/messaging_service.py
"""
Messaging API orchestration.

Composes the eligibility gate, the conversation and message stores and the
notification sink. Realtime pushes are issued by the routes after these
methods return, so the durable store is always written first and a push
failure can never undo a send.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.exceptions import RECIPIENT_NOT_FOUND, NotFoundException, ValidationException
from ..models.conversation import Conversation
from ..models.message import Message
from ..models.user import User
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from ..repositories.user_repository import UserRepository
from .base import BaseService
from .conversation_service import ConversationService, ConversationSummary, validate_user_id
from .eligibility_service import EligibilityService
from .message_service import DeleteResult, MessagePage, MessageService
from .notification_service import NotificationService


@dataclass
class SendResult:
    """Created message plus the context routes need for realtime pushes."""

    message: Message
    conversation: Conversation
    recipient_id: str


@dataclass
class ConversationListResult:
    conversations: List[ConversationSummary] = field(default_factory=list)
    users: dict = field(default_factory=dict)

    @property
    def count(self) -> int:
        return len(self.conversations)


@dataclass
class MarkReadResult:
    reader_id: str
    other_user_id: str
    count: int
    read_at: datetime
    conversation_id: Optional[str] = None


class MessagingService(BaseService):
    """
    Service behind the /messages HTTP surface.
    """

    def __init__(
        self,
        db: Session,
        eligibility_service: Optional[EligibilityService] = None,
        notification_service: Optional[NotificationService] = None,
    ):
        super().__init__(db)
        self.eligibility = eligibility_service or EligibilityService(db)
        self.conversations = ConversationService(db)
        self.messages = MessageService(db)
        self.notifications = notification_service or NotificationService(db)
        self.user_repository: UserRepository = RepositoryFactory.create_user_repository(db)

    def _require_user(self, user_id: Optional[str]) -> User:
        validate_user_id(user_id, "recipientId")
        user = self.user_repository.get_active(user_id)
        if user is None:
            raise NotFoundException("Recipient not found", code=RECIPIENT_NOT_FOUND)
        return user

    @BaseService.measure_operation("send_message")
    def send_message(
        self,
        sender_id: str,
        recipient_id: Optional[str],
        content: Optional[str] = None,
        message_type: Optional[str] = "text",
        attachments: Optional[list] = None,
    ) -> SendResult:
        """
        Send a message from ``sender_id`` to ``recipient_id``.

        Conversation upsert, message append and the counter update commit
        together; the notification is written afterwards in its own
        transaction and its failure is only logged.

        Raises:
            ValidationException: missing recipient, bad type/content
            NotFoundException: recipient does not exist
            NoMentorshipConnectionException: no accepted connection
        """
        if not recipient_id:
            raise ValidationException("recipientId is required", code="RECIPIENT_REQUIRED")
        if recipient_id == sender_id:
            raise ValidationException("You cannot message yourself", code="SELF_MESSAGE")

        recipient = self._require_user(recipient_id)
        self.eligibility.ensure_eligible(sender_id, recipient_id)

        with self.transaction():
            conversation = self.conversations.find_or_create(sender_id, recipient_id)
            message = self.messages.append(
                conversation.conversation_key,
                sender_id,
                recipient_id,
                message_type,
                content,
                attachments,
            )
            self.conversations.record_message_sent(conversation.id, message, recipient_id)

        prometheus_metrics.inc_message_sent(message.message_type)
        self.logger.info(
            "[MSG] Message sent",
            extra={
                "message_id": message.id,
                "conversation_id": conversation.id,
                "sender_id": sender_id,
                "recipient_id": recipient.id,
            },
        )

        try:
            self.notifications.notify_new_message(recipient_id, message.sender, message)
        except Exception as e:
            self.logger.warning(
                "[NOTIFY] Failed to record new message notification: %s",
                e,
                extra={"message_id": message.id, "recipient_id": recipient_id},
            )

        return SendResult(message=message, conversation=conversation, recipient_id=recipient_id)

    @BaseService.measure_operation("list_conversations")
    def list_conversations(self, user_id: str) -> ConversationListResult:
        partners = self.eligibility.connected_user_ids(user_id)
        summaries = self.conversations.list_for_user(user_id, partners)
        users = {}
        for summary in summaries:
            conversation = summary.conversation
            for participant in (conversation.participant_one, conversation.participant_two):
                if participant is not None:
                    users[participant.id] = participant
        return ConversationListResult(conversations=summaries, users=users)

    @BaseService.measure_operation("list_messages")
    def list_messages(
        self,
        user_id: str,
        other_user_id: str,
        limit: Optional[int] = None,
        before: Optional[datetime] = None,
    ) -> MessagePage:
        """
        History between the caller and ``other_user_id``.

        Eligibility is re-checked on every call; a revoked connection hides
        history even though the messages persist.
        """
        self._require_user(other_user_id)
        self.eligibility.ensure_eligible(user_id, other_user_id)

        conversation = self.conversations.get_by_pair(user_id, other_user_id)
        if conversation is None:
            return MessagePage(messages=[], has_more=False)
        return self.messages.list_by_conversation(
            conversation.conversation_key, user_id, limit=limit, before=before
        )

    @BaseService.measure_operation("mark_read")
    def mark_read(self, user_id: str, other_user_id: str) -> MarkReadResult:
        """Mark everything ``other_user_id`` sent the caller as read and reset the caller's counter."""
        validate_user_id(other_user_id, "recipientId")
        read_at = datetime.now(timezone.utc)

        conversation = self.conversations.get_by_pair(user_id, other_user_id)
        if conversation is None:
            return MarkReadResult(
                reader_id=user_id, other_user_id=other_user_id, count=0, read_at=read_at
            )

        with self.transaction():
            count = self.messages.mark_many_read(
                conversation.conversation_key, user_id, other_user_id
            )
            self.conversations.mark_read(conversation.id, user_id)

        self.logger.info(
            f"[MSG] Marked {count} messages as read",
            extra={"conversation_id": conversation.id, "reader_id": user_id},
        )
        return MarkReadResult(
            reader_id=user_id,
            other_user_id=other_user_id,
            count=count,
            read_at=read_at,
            conversation_id=conversation.id,
        )

    @BaseService.measure_operation("delete_message")
    def delete_message(self, user_id: str, message_id: str) -> DeleteResult:
        with self.transaction():
            result = self.messages.soft_delete(message_id, user_id)
        self.logger.info(
            "[MSG] Message deleted for user",
            extra={"message_id": message_id, "user_id": user_id, "hidden": result.hidden},
        )
        return result

    @BaseService.measure_operation("unread_count")
    def unread_count(self, user_id: str) -> int:
        return self.conversations.get_unread_total(user_id)

    @BaseService.measure_operation("search_messages")
    def search(self, user_id: str, query: Optional[str]) -> List[Message]:
        return self.messages.search(user_id, query)

    @BaseService.measure_operation("can_message")
    def can_message(self, user_id: str, other_user_id: str) -> bool:
        return self.eligibility.is_eligible(user_id, other_user_id)
