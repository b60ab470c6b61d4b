# backend/mentorlink/core/broadcast.py
"""
Shared broadcast manager for the realtime relay.

One Broadcaster instance per worker process. Broadcaster keeps a single
pub/sub connection and fans messages out to subscribers through internal
asyncio queues, so every gateway instance subscribes once to the relay
channel regardless of how many sockets it holds.

The relay is optional: without ``REALTIME_RELAY_URL`` the gateway delivers
to local connections only.
"""
import logging
from typing import Optional

from broadcaster import Broadcast

from .config import settings

logger = logging.getLogger(__name__)

_broadcast: Optional[Broadcast] = None


async def connect_broadcast(url: Optional[str] = None) -> Broadcast:
    """
    Connect the relay backend.

    Call during application startup (in lifespan manager).
    """
    global _broadcast

    relay_url = url or settings.realtime_relay_url
    if not relay_url:
        raise RuntimeError("Realtime relay URL is not configured")

    _broadcast = Broadcast(relay_url)
    await _broadcast.connect()
    logger.info("[RELAY] Connected broadcaster backend: %s", relay_url.split("@")[-1])
    return _broadcast


async def disconnect_broadcast() -> None:
    """
    Disconnect the relay backend.

    Call during application shutdown.
    """
    global _broadcast

    if _broadcast is not None:
        await _broadcast.disconnect()
        _broadcast = None
        logger.info("[RELAY] Disconnected broadcaster backend")
