# backend/mentorlink/services/message_service.py
"""
Message store: the durable, ordered message log per conversation.

Handles:
- Type/content validation on append
- Per-viewer history pages (oldest first, paged backwards by timestamp)
- Bulk read receipts
- Per-user soft delete with a derived fully-hidden flag
- Content search

Like the conversation store, nothing here commits; callers own the
transaction.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import (
    MESSAGE_NOT_FOUND,
    NOT_MESSAGE_PARTICIPANT,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from ..models.message import MESSAGE_TYPE_TEXT, MESSAGE_TYPES, Message
from ..repositories.factory import RepositoryFactory
from ..repositories.message_repository import MessageRepository
from .base import BaseService


@dataclass
class MessagePage:
    messages: List[Message]
    has_more: bool


@dataclass
class DeleteResult:
    message_id: str
    hidden: bool


def validate_message_payload(
    message_type: Optional[str],
    content: Optional[str],
    attachments: Optional[List[Dict[str, Any]]],
) -> tuple[str, Optional[str], List[Dict[str, Any]]]:
    """
    Normalise and validate a message body.

    Text messages need non-blank content; every other type needs at least
    one attachment.

    Returns:
        (message_type, content, attachments) ready to persist
    """
    message_type = (message_type or MESSAGE_TYPE_TEXT).strip().lower()
    if message_type not in MESSAGE_TYPES:
        raise ValidationException(
            f"Invalid message type: {message_type}",
            code="INVALID_MESSAGE_TYPE",
            details={"allowed": list(MESSAGE_TYPES)},
        )

    attachments = list(attachments or [])
    text = content.strip() if content else ""

    if message_type == MESSAGE_TYPE_TEXT:
        if not text:
            raise ValidationException("Message content is required", code="CONTENT_REQUIRED")
    elif not attachments:
        raise ValidationException(
            f"Attachments are required for {message_type} messages",
            code="ATTACHMENTS_REQUIRED",
        )

    if len(text) > settings.message_max_length:
        raise ValidationException(
            f"Message content exceeds {settings.message_max_length} characters",
            code="CONTENT_TOO_LONG",
        )

    return message_type, (text or None), attachments


class MessageService(BaseService):
    """
    Service for the message log of a conversation.
    """

    def __init__(self, db: Session):
        super().__init__(db)
        self.repository: MessageRepository = RepositoryFactory.create_message_repository(db)

    @BaseService.measure_operation("append_message")
    def append(
        self,
        conversation_key: str,
        sender_id: str,
        recipient_id: str,
        message_type: Optional[str],
        content: Optional[str],
        attachments: Optional[List[Dict[str, Any]]] = None,
    ) -> Message:
        """
        Persist a message, returning it with sender/recipient resolved.

        Raises:
            ValidationException: text without content, media without attachments
        """
        message_type, content, attachments = validate_message_payload(
            message_type, content, attachments
        )
        return self.repository.create_message(
            conversation_key=conversation_key,
            sender_id=sender_id,
            recipient_id=recipient_id,
            message_type=message_type,
            content=content,
            attachments=attachments,
        )

    @BaseService.measure_operation("list_by_conversation")
    def list_by_conversation(
        self,
        conversation_key: str,
        viewer_id: str,
        limit: Optional[int] = None,
        before: Optional[datetime] = None,
    ) -> MessagePage:
        """
        A page of history as ``viewer_id`` sees it, oldest first.

        One extra row is fetched so ``has_more`` is exact: it is true only
        when older visible messages exist before the first one returned.
        """
        limit = self.clamp_limit(limit)
        if before is not None and before.tzinfo is None:
            before = before.replace(tzinfo=timezone.utc)
        messages = self.repository.list_for_conversation(
            conversation_key,
            viewer_id,
            limit=limit + 1,
            before=before.astimezone(timezone.utc) if before is not None else None,
        )
        has_more = len(messages) > limit
        if has_more:
            # Oldest first, so the extra row is at the front
            messages = messages[1:]
        return MessagePage(messages=messages, has_more=has_more)

    @BaseService.measure_operation("mark_many_read")
    def mark_many_read(self, conversation_key: str, recipient_id: str, sender_id: str) -> int:
        return self.repository.mark_many_read(conversation_key, recipient_id, sender_id)

    @BaseService.measure_operation("soft_delete_message")
    def soft_delete(self, message_id: str, requester_id: str) -> DeleteResult:
        """
        Hide a message from the requester's own view.

        Either participant may delete their copy; the message disappears for
        both only once both have deleted it. Repeat deletes are no-ops.

        Raises:
            NotFoundException: unknown message
            ForbiddenException: requester is neither sender nor recipient
        """
        message = self.repository.get_for_update(message_id)
        if message is None:
            raise NotFoundException("Message not found", code=MESSAGE_NOT_FOUND)
        if not message.is_participant(requester_id):
            raise ForbiddenException(
                "You can only delete messages you sent or received",
                code=NOT_MESSAGE_PARTICIPANT,
            )

        hidden = self.repository.add_deletion(message, requester_id)
        return DeleteResult(message_id=message.id, hidden=hidden)

    @BaseService.measure_operation("search_messages")
    def search(self, user_id: str, query: Optional[str], limit: Optional[int] = None) -> List[Message]:
        text = (query or "").strip()
        if not text:
            return []
        return self.repository.search_for_user(
            user_id, text, limit=limit or settings.message_search_limit
        )

    @staticmethod
    def clamp_limit(limit: Optional[int]) -> int:
        if not limit or limit < 1:
            return settings.message_page_size
        return min(limit, settings.message_page_size_max)
