# backend/mentorlink/services/presence/base.py
"""
Presence directory interface.

Maps a user id to the realtime connection currently serving that user.
Last connect wins: ``set`` overwrites any previous entry. ``delete`` with
a connection id only clears the entry while it still names that
connection, so a late disconnect from an old socket cannot remove the
presence of a newer one.
"""

from abc import ABC, abstractmethod
from typing import List, Optional


class PresenceDirectory(ABC):
    """Backend-agnostic presence operations used by the realtime gateway."""

    backend_name: str = "abstract"

    @abstractmethod
    async def set(self, user_id: str, connection_id: str, ttl: Optional[int] = None) -> None:
        """Record ``connection_id`` as the user's active connection."""

    @abstractmethod
    async def get(self, user_id: str) -> Optional[str]:
        """Return the user's active connection id, or None when offline."""

    @abstractmethod
    async def delete(self, user_id: str, connection_id: Optional[str] = None) -> bool:
        """
        Remove the user's entry.

        When ``connection_id`` is given the entry is only removed if it still
        matches. Returns True if an entry was removed.
        """

    @abstractmethod
    async def list_all(self) -> List[str]:
        """Ids of all users currently present."""

    @abstractmethod
    async def refresh(self, user_id: str, connection_id: str, ttl: Optional[int] = None) -> bool:
        """Extend the entry's lifetime if it still belongs to ``connection_id``."""

    async def check(self) -> bool:
        """Health probe; True when the backend is reachable."""
        return True

    async def close(self) -> None:
        return None
