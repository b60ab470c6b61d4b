# backend/mentorlink/services/messaging/__init__.py
"""
Realtime messaging package.

- ConnectionManager: sockets held by this instance
- RealtimeGateway: event routing between users via the presence directory
- RealtimeRelay: Broadcaster-backed fan-out across instances
- publisher: post-commit pushes from the HTTP API
"""

from .connection_manager import Connection, ConnectionManager, ConnectionState
from .gateway import RealtimeGateway, get_gateway, set_gateway
from .publisher import publish_messages_read, publish_new_message
from .relay import RealtimeRelay

__all__ = [
    "Connection",
    "ConnectionManager",
    "ConnectionState",
    "RealtimeGateway",
    "RealtimeRelay",
    "get_gateway",
    "publish_messages_read",
    "publish_new_message",
    "set_gateway",
]
