# backend/mentorlink/services/presence/__init__.py
"""
Presence directory backends.

The backend is chosen once at startup from settings; the rest of the
system only sees :class:`PresenceDirectory`.
"""

from typing import Optional

from redis.asyncio import Redis as AsyncRedis

from ...core.config import Settings
from .base import PresenceDirectory
from .local import LocalPresenceDirectory
from .redis_presence import RedisPresenceDirectory


def build_presence_directory(
    settings: Settings, redis_client: Optional[AsyncRedis] = None
) -> PresenceDirectory:
    """
    Build the configured presence backend.

    Args:
        settings: application settings (``presence_backend`` selects the backend)
        redis_client: required for the ``redis`` backend
    """
    if settings.presence_backend == "redis":
        if redis_client is None:
            raise ValueError("A Redis client is required for the redis presence backend")
        return RedisPresenceDirectory(
            redis_client,
            key_prefix=settings.presence_key_prefix,
            default_ttl=settings.presence_ttl_seconds,
            timeout=settings.presence_timeout_seconds,
        )
    return LocalPresenceDirectory()


__all__ = [
    "LocalPresenceDirectory",
    "PresenceDirectory",
    "RedisPresenceDirectory",
    "build_presence_directory",
]
