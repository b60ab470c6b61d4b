"""WebSocket message envelope models."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# Client -> server
EVENT_IDENTIFY = "identify"
EVENT_USER_ONLINE = "user_online"
EVENT_SEND_MESSAGE = "send_message"
EVENT_TYPING_START = "typing_start"
EVENT_TYPING_STOP = "typing_stop"
EVENT_MESSAGES_READ = "messages_read"
EVENT_PING = "ping"

# Server -> client
EVENT_CONNECTED = "connected"
EVENT_ONLINE_USERS = "online_users"
EVENT_USER_STATUS_CHANGED = "user_status_changed"
EVENT_RECEIVE_MESSAGE = "receive_message"
EVENT_USER_TYPING = "user_typing"
EVENT_USER_STOPPED_TYPING = "user_stopped_typing"
EVENT_MESSAGES_MARKED_READ = "messages_marked_read"
EVENT_PONG = "pong"
EVENT_ERROR = "error"

STATUS_ONLINE = "online"
STATUS_OFFLINE = "offline"


class WsInbound(BaseModel):
    """Client -> Server."""

    type: str
    data: Dict[str, Any] = Field(default_factory=dict)


class WsOutbound(BaseModel):
    """Server -> Client."""

    type: str
    data: Dict[str, Any] = Field(default_factory=dict)


class _InboundPayload(BaseModel):
    # Clients may send extra fields (e.g. senderId); the acting user is always the bound one
    model_config = ConfigDict(extra="ignore", alias_generator=to_camel, populate_by_name=True)


class IdentifyPayload(_InboundPayload):
    user_id: Optional[str] = None


class SendMessagePayload(_InboundPayload):
    recipient_id: str = Field(..., min_length=1)
    message: Dict[str, Any] = Field(default_factory=dict)


class TypingPayload(_InboundPayload):
    recipient_id: str = Field(..., min_length=1)


class MessagesReadPayload(_InboundPayload):
    sender_id: str = Field(..., min_length=1)
