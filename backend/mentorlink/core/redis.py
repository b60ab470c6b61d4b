# backend/mentorlink/core/redis.py
"""
Async Redis client for the shared presence directory.

The client is created lazily so single-instance deployments running the
in-process presence backend never open a Redis connection.
"""

import logging
from typing import Optional

from redis.asyncio import Redis as AsyncRedis

from .config import settings

logger = logging.getLogger(__name__)

_async_redis_client: Optional[AsyncRedis] = None


async def get_async_redis_client() -> AsyncRedis:
    """
    Get or create the async Redis client.

    Returns:
        AsyncRedis: Async Redis client instance
    """
    global _async_redis_client

    if _async_redis_client is None:
        redis_url = settings.redis_url or "redis://localhost:6379"
        _async_redis_client = AsyncRedis.from_url(
            redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=settings.presence_timeout_seconds,
            socket_connect_timeout=settings.presence_timeout_seconds,
        )
        logger.info("[PRESENCE] Async Redis client initialized")

    return _async_redis_client


async def close_async_redis_client() -> None:
    """Close async Redis client gracefully."""
    global _async_redis_client

    if _async_redis_client is not None:
        await _async_redis_client.aclose()
        _async_redis_client = None
        logger.info("[PRESENCE] Async Redis client closed")
