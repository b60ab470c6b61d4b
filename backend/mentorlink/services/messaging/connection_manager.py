# backend/mentorlink/services/messaging/connection_manager.py
"""
Local registry of realtime connections held by this instance.

Each physical socket gets its own :class:`Connection` with a fresh id; that
id is what the presence directory stores, so it doubles as the generation
token that stops a stale disconnect from clearing a newer connection.
"""

import asyncio
from datetime import datetime, timezone
from enum import Enum
import logging
from typing import Any, Dict, List, Optional, Protocol
import uuid

from ...schemas.realtime import WsOutbound

logger = logging.getLogger(__name__)


class RealtimeSocket(Protocol):
    async def send_json(self, data: Any) -> None:
        ...


class ConnectionState(str, Enum):
    """Per-connection lifecycle; transitions only move forward."""

    ANONYMOUS = "anonymous"
    IDENTIFIED = "identified"
    DISCONNECTED = "disconnected"


class Connection:
    def __init__(self, socket: RealtimeSocket, authenticated_user_id: str):
        self.id = uuid.uuid4().hex
        self.socket = socket
        self.authenticated_user_id = authenticated_user_id
        self.user_id: Optional[str] = None
        self.state = ConnectionState.ANONYMOUS
        self.connected_at = datetime.now(timezone.utc)
        # Serialises writes so events leave in emission order
        self._send_lock = asyncio.Lock()

    @property
    def is_identified(self) -> bool:
        return self.state == ConnectionState.IDENTIFIED

    def identify(self, user_id: str) -> None:
        if self.state == ConnectionState.DISCONNECTED:
            raise RuntimeError("Cannot identify a disconnected connection")
        self.user_id = user_id
        self.state = ConnectionState.IDENTIFIED

    def close(self) -> None:
        self.state = ConnectionState.DISCONNECTED

    async def send(self, event: str, data: Dict[str, Any]) -> bool:
        """Write one envelope; False if the connection is gone or the write failed."""
        async with self._send_lock:
            if self.state == ConnectionState.DISCONNECTED:
                return False
            try:
                await self.socket.send_json(WsOutbound(type=event, data=data).model_dump())
            except Exception as e:
                logger.debug(
                    "[REALTIME] Send failed on connection %s: %s",
                    self.id,
                    e,
                    extra={"event": event, "user_id": self.user_id},
                )
                return False
        return True

    def __repr__(self) -> str:
        return f"<Connection(id={self.id}, user={self.user_id}, state={self.state.value})>"


class ConnectionManager:
    def __init__(self) -> None:
        self._connections: Dict[str, Connection] = {}

    def add(self, connection: Connection) -> None:
        self._connections[connection.id] = connection

    def remove(self, connection_id: str) -> Optional[Connection]:
        return self._connections.pop(connection_id, None)

    def get(self, connection_id: str) -> Optional[Connection]:
        return self._connections.get(connection_id)

    def all(self, exclude: Optional[str] = None) -> List[Connection]:
        return [c for cid, c in self._connections.items() if cid != exclude]

    def identified_user_ids(self) -> List[str]:
        return sorted(
            {c.user_id for c in self._connections.values() if c.is_identified and c.user_id}
        )

    def __len__(self) -> int:
        return len(self._connections)
