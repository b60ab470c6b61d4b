# backend/mentorlink/schemas/message_requests.py
"""
Request schemas for the message/chat system.

Business validation (missing recipient, empty text, unknown message type)
happens in the service layer so it surfaces as a 400 with a stable code;
these models only enforce shape.
"""

from typing import List, Optional

from pydantic import Field

from ._strict_base import CamelRequestModel


class AttachmentPayload(CamelRequestModel):
    """An uploaded file referenced by a media message."""

    url: str = Field(..., min_length=1, max_length=2048)
    public_id: Optional[str] = Field(default=None, max_length=255)
    name: Optional[str] = Field(default=None, max_length=255)
    format: Optional[str] = Field(default=None, max_length=32)
    type: Optional[str] = Field(default=None, max_length=32)
    mime_type: Optional[str] = Field(default=None, max_length=128)
    size: Optional[int] = Field(default=None, ge=0)


class SendMessageRequest(CamelRequestModel):
    """Body of POST /messages."""

    recipient_id: Optional[str] = Field(default=None, max_length=64)
    content: Optional[str] = None
    message_type: Optional[str] = Field(default="text", max_length=16)
    attachments: Optional[List[AttachmentPayload]] = Field(default=None, max_length=10)
