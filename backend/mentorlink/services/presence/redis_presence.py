# backend/mentorlink/services/presence/redis_presence.py
"""
Shared presence directory backed by Redis.

Required when more than one backend instance runs. Each entry is a plain
string key ``<prefix><user_id>`` holding the connection id, written with an
expiry so entries left behind by a crashed instance heal on their own.

Compare-and-delete and compare-and-expire run as Lua scripts so the
ownership check and the write are atomic on the server.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

from redis.asyncio import Redis as AsyncRedis
from redis.exceptions import RedisError

from ...core.exceptions import TransientInfraException
from ...monitoring.prometheus_metrics import prometheus_metrics
from .base import PresenceDirectory

logger = logging.getLogger(__name__)

T = TypeVar("T")

_DELETE_IF_OWNER = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
end
return 0
"""

_EXPIRE_IF_OWNER = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('EXPIRE', KEYS[1], ARGV[2])
end
return 0
"""


class RedisPresenceDirectory(PresenceDirectory):
    backend_name = "redis"

    def __init__(
        self,
        client: AsyncRedis,
        *,
        key_prefix: str = "presence:user:",
        default_ttl: int = 86400,
        timeout: float = 0.5,
    ) -> None:
        self.client = client
        self.key_prefix = key_prefix
        self.default_ttl = default_ttl
        self.timeout = timeout
        self._delete_if_owner = client.register_script(_DELETE_IF_OWNER)
        self._expire_if_owner = client.register_script(_EXPIRE_IF_OWNER)

    def _key(self, user_id: str) -> str:
        return f"{self.key_prefix}{user_id}"

    async def _call(self, operation: str, factory: Callable[[], Awaitable[T]]) -> T:
        try:
            return await asyncio.wait_for(factory(), timeout=self.timeout)
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            prometheus_metrics.inc_presence_failure(operation)
            logger.warning(
                "[PRESENCE] Redis %s failed: %s",
                operation,
                e,
                extra={"operation": operation, "error_type": type(e).__name__},
            )
            raise TransientInfraException(
                f"Presence directory unavailable during {operation}",
                code="PRESENCE_UNAVAILABLE",
            ) from e

    async def set(self, user_id: str, connection_id: str, ttl: Optional[int] = None) -> None:
        await self._call(
            "set",
            lambda: self.client.set(self._key(user_id), connection_id, ex=ttl or self.default_ttl),
        )

    async def get(self, user_id: str) -> Optional[str]:
        value: Any = await self._call("get", lambda: self.client.get(self._key(user_id)))
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return value or None

    async def delete(self, user_id: str, connection_id: Optional[str] = None) -> bool:
        key = self._key(user_id)
        if connection_id is None:
            removed = await self._call("delete", lambda: self.client.delete(key))
        else:
            removed = await self._call(
                "delete",
                lambda: self._delete_if_owner(keys=[key], args=[connection_id]),
            )
        return bool(removed)

    async def list_all(self) -> List[str]:
        async def _scan() -> List[str]:
            users: List[str] = []
            async for key in self.client.scan_iter(match=f"{self.key_prefix}*", count=500):
                if isinstance(key, bytes):
                    key = key.decode("utf-8")
                users.append(key[len(self.key_prefix) :])
            return users

        return await self._call("list_all", _scan)

    async def refresh(self, user_id: str, connection_id: str, ttl: Optional[int] = None) -> bool:
        refreshed = await self._call(
            "refresh",
            lambda: self._expire_if_owner(
                keys=[self._key(user_id)], args=[connection_id, ttl or self.default_ttl]
            ),
        )
        return bool(refreshed)

    async def check(self) -> bool:
        try:
            await self._call("ping", lambda: self.client.ping())
        except TransientInfraException:
            return False
        return True
