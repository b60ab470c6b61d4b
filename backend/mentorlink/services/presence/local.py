# backend/mentorlink/services/presence/local.py
"""
In-process presence directory.

Valid only when a single backend instance serves every realtime
connection. Entries live until their connection disconnects; TTLs are
accepted for interface parity and ignored.
"""

from typing import Dict, List, Optional

from .base import PresenceDirectory


class LocalPresenceDirectory(PresenceDirectory):
    backend_name = "local"

    def __init__(self) -> None:
        self._entries: Dict[str, str] = {}

    async def set(self, user_id: str, connection_id: str, ttl: Optional[int] = None) -> None:
        self._entries[user_id] = connection_id

    async def get(self, user_id: str) -> Optional[str]:
        return self._entries.get(user_id)

    async def delete(self, user_id: str, connection_id: Optional[str] = None) -> bool:
        current = self._entries.get(user_id)
        if current is None:
            return False
        if connection_id is not None and current != connection_id:
            return False
        del self._entries[user_id]
        return True

    async def list_all(self) -> List[str]:
        return list(self._entries)

    async def refresh(self, user_id: str, connection_id: str, ttl: Optional[int] = None) -> bool:
        return self._entries.get(user_id) == connection_id
