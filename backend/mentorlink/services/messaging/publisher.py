# backend/mentorlink/services/messaging/publisher.py
"""
High-level realtime pushes issued by the HTTP API after a commit.

Every function here is fire-and-forget: failures are logged and swallowed
because the message is already durable and clients can always refetch.
"""

from datetime import datetime
import logging
from typing import Any, Dict, Optional

from ...schemas.realtime import EVENT_MESSAGES_MARKED_READ, EVENT_RECEIVE_MESSAGE
from .gateway import RealtimeGateway

logger = logging.getLogger(__name__)


async def publish_new_message(
    gateway: Optional[RealtimeGateway], recipient_id: str, message_payload: Dict[str, Any]
) -> bool:
    """Push ``receive_message`` to the recipient if they are online."""
    if gateway is None:
        return False
    try:
        delivered = await gateway.emit_to_user(recipient_id, EVENT_RECEIVE_MESSAGE, message_payload)
    except Exception as e:
        logger.error(
            f"[REALTIME] Failed to push new message: {e}",
            extra={"recipient_id": recipient_id, "message_id": message_payload.get("_id")},
        )
        return False
    logger.debug(
        "[REALTIME] New message push",
        extra={"recipient_id": recipient_id, "delivered": delivered},
    )
    return delivered


async def publish_messages_read(
    gateway: Optional[RealtimeGateway], sender_id: str, read_by: str, read_at: datetime
) -> bool:
    """Tell the original sender that ``read_by`` has read their messages."""
    if gateway is None:
        return False
    try:
        return await gateway.emit_to_user(
            sender_id,
            EVENT_MESSAGES_MARKED_READ,
            {"readBy": read_by, "timestamp": read_at.isoformat()},
        )
    except Exception as e:
        logger.error(
            f"[REALTIME] Failed to push read receipt: {e}",
            extra={"sender_id": sender_id, "read_by": read_by},
        )
        return False
