# backend/mentorlink/schemas/message_responses.py
"""
Response schemas for the message/chat system.

Identity fields use ``_id`` on the wire, matching the chat clients.
"""

from typing import Any, Dict, List, Optional

from pydantic import Field

from ..models.message import Message
from ..models.user import User
from ..services.conversation_service import ConversationSummary
from ._strict_base import CamelModel, UtcDatetime


class UserSummary(CamelModel):
    """Display identity of a participant."""

    id: str = Field(..., alias="_id")
    name: str
    email: Optional[str] = None
    profile_image: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "UserSummary":
        return cls(
            id=user.id, name=user.name, email=user.email, profile_image=user.profile_image
        )


class AttachmentResponse(CamelModel):
    url: str
    public_id: Optional[str] = None
    name: Optional[str] = None
    format: Optional[str] = None
    type: Optional[str] = None
    mime_type: Optional[str] = None
    size: Optional[int] = None


class MessageResponse(CamelModel):
    id: str = Field(..., alias="_id")
    conversation_id: str
    sender: UserSummary
    recipient: UserSummary
    content: Optional[str] = None
    message_type: str
    attachments: List[AttachmentResponse] = Field(default_factory=list)
    is_read: bool = False
    read_at: Optional[UtcDatetime] = None
    created_at: UtcDatetime

    @classmethod
    def from_message(cls, message: Message) -> "MessageResponse":
        return cls(
            id=message.id,
            conversation_id=message.conversation_key,
            sender=UserSummary.from_user(message.sender),
            recipient=UserSummary.from_user(message.recipient),
            content=message.content,
            message_type=message.message_type,
            attachments=[
                AttachmentResponse.model_validate(item) for item in (message.attachments or [])
            ],
            is_read=bool(message.is_read),
            read_at=message.read_at,
            created_at=message.created_at,
        )

    def to_event_payload(self) -> Dict[str, Any]:
        """JSON-ready dict for realtime pushes."""
        return self.model_dump(by_alias=True, mode="json")


class SendMessageResponse(CamelModel):
    success: bool = True
    message: MessageResponse
    conversation_id: str


class LastMessageResponse(CamelModel):
    content: Optional[str] = None
    sender: Optional[str] = None
    created_at: Optional[UtcDatetime] = None
    message_type: Optional[str] = None


class ConversationResponse(CamelModel):
    id: str = Field(..., alias="_id")
    conversation_id: str
    participant: Optional[UserSummary] = None
    last_message: Optional[LastMessageResponse] = None
    last_message_at: Optional[UtcDatetime] = None
    unread_count: int = 0
    created_at: UtcDatetime
    updated_at: UtcDatetime

    @classmethod
    def from_summary(
        cls, summary: ConversationSummary, users: Dict[str, User]
    ) -> "ConversationResponse":
        conversation = summary.conversation
        other = users.get(summary.other_user_id)
        last_message = None
        if conversation.last_message_at is not None:
            last_message = LastMessageResponse(
                content=conversation.last_message_content,
                sender=conversation.last_message_sender_id,
                created_at=conversation.last_message_at,
                message_type=conversation.last_message_type,
            )
        return cls(
            id=conversation.id,
            conversation_id=conversation.conversation_key,
            participant=UserSummary.from_user(other) if other is not None else None,
            last_message=last_message,
            last_message_at=conversation.last_message_at,
            unread_count=summary.unread_count,
            created_at=conversation.created_at,
            updated_at=conversation.updated_at,
        )


class ConversationListResponse(CamelModel):
    conversations: List[ConversationResponse]
    count: int


class MessageListResponse(CamelModel):
    messages: List[MessageResponse]
    count: int
    has_more: bool


class MessageSearchResponse(CamelModel):
    messages: List[MessageResponse]
    count: int


class SuccessResponse(CamelModel):
    success: bool = True
    message: str


class UnreadCountResponse(CamelModel):
    unread_count: int


class CanMessageResponse(CamelModel):
    can_message: bool


class UploadResponse(CamelModel):
    success: bool = True
    url: str
    public_id: str
    format: str
    size: int
    type: str
