# backend/mentorlink/services/messaging/gateway.py
"""
Realtime gateway.

Owns the sockets held by this instance and routes events between users via
the presence directory. Transport-agnostic: anything with an async
``send_json`` can be a socket, which keeps FastAPI's WebSocket handling in
the route and the event logic here.

Connection lifecycle: Anonymous -> Identified -> Disconnected.

Delivery is best-effort. The durable store is the system of record, so a
presence failure or timeout is treated as "recipient offline" and logged,
never raised to the client.
"""

import asyncio
from datetime import datetime, timezone
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import ValidationError

from ...core.exceptions import TransientInfraException
from ...monitoring.prometheus_metrics import prometheus_metrics
from ...schemas.realtime import (
    EVENT_CONNECTED,
    EVENT_ERROR,
    EVENT_IDENTIFY,
    EVENT_MESSAGES_MARKED_READ,
    EVENT_MESSAGES_READ,
    EVENT_ONLINE_USERS,
    EVENT_PING,
    EVENT_PONG,
    EVENT_RECEIVE_MESSAGE,
    EVENT_SEND_MESSAGE,
    EVENT_TYPING_START,
    EVENT_TYPING_STOP,
    EVENT_USER_ONLINE,
    EVENT_USER_STATUS_CHANGED,
    EVENT_USER_STOPPED_TYPING,
    EVENT_USER_TYPING,
    STATUS_OFFLINE,
    STATUS_ONLINE,
    IdentifyPayload,
    MessagesReadPayload,
    SendMessagePayload,
    TypingPayload,
    WsInbound,
)
from ..presence.base import PresenceDirectory
from .connection_manager import Connection, ConnectionManager, ConnectionState, RealtimeSocket
from .relay import KIND_BROADCAST, KIND_DIRECT, RealtimeRelay

logger = logging.getLogger(__name__)

ERROR_IDENTITY_MISMATCH = "IDENTITY_MISMATCH"
ERROR_NOT_IDENTIFIED = "NOT_IDENTIFIED"
ERROR_INVALID_EVENT = "INVALID_EVENT"
ERROR_UNKNOWN_EVENT = "UNKNOWN_EVENT"
ERROR_NO_MENTORSHIP_CONNECTION = "NO_MENTORSHIP_CONNECTION"

Handler = Callable[[Connection, Dict[str, Any]], Awaitable[None]]
EligibilityCheck = Callable[[str, str], bool]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _claimed_sender_id(message: Dict[str, Any]) -> Optional[str]:
    """Sender named inside a client-relayed message, as ``sender._id``, ``sender`` or ``senderId``."""
    sender = message.get("sender")
    if isinstance(sender, dict):
        sender = sender.get("_id") or sender.get("id")
    if sender is None:
        sender = message.get("senderId")
    return str(sender) if sender is not None else None


class RealtimeGateway:
    def __init__(
        self,
        presence: PresenceDirectory,
        *,
        relay: Optional[RealtimeRelay] = None,
        eligibility: Optional[EligibilityCheck] = None,
        presence_ttl: int = 86400,
        presence_timeout: float = 0.5,
    ):
        self.presence = presence
        self.relay = relay
        # Without a check, user-to-user events are refused
        self.eligibility = eligibility
        self.presence_ttl = presence_ttl
        self.presence_timeout = presence_timeout
        self.connections = ConnectionManager()
        self._handlers: Dict[str, Handler] = {
            EVENT_IDENTIFY: self._on_identify,
            EVENT_USER_ONLINE: self._on_identify,
            EVENT_SEND_MESSAGE: self._on_send_message,
            EVENT_TYPING_START: self._on_typing,
            EVENT_TYPING_STOP: self._on_typing,
            EVENT_MESSAGES_READ: self._on_messages_read,
            EVENT_PING: self._on_ping,
        }

    # Lifecycle

    async def start(self) -> None:
        if self.relay is not None:
            await self.relay.start(self._on_relay_envelope)
        logger.info(
            "[REALTIME] Gateway started",
            extra={
                "presence_backend": self.presence.backend_name,
                "relay": self.relay is not None,
            },
        )

    async def stop(self) -> None:
        if self.relay is not None:
            await self.relay.stop()
        for connection in self.connections.all():
            connection.close()
            self.connections.remove(connection.id)
        prometheus_metrics.set_realtime_connections(0)
        logger.info("[REALTIME] Gateway stopped")

    async def connect(self, socket: RealtimeSocket, authenticated_user_id: str) -> Connection:
        """Register an accepted socket; the connection starts Anonymous."""
        connection = Connection(socket, authenticated_user_id)
        self.connections.add(connection)
        prometheus_metrics.set_realtime_connections(len(self.connections))
        await self._send(
            connection,
            EVENT_CONNECTED,
            {"connectionId": connection.id, "userId": authenticated_user_id},
        )
        logger.debug(
            "[REALTIME] Connection opened",
            extra={"connection_id": connection.id, "user_id": authenticated_user_id},
        )
        return connection

    async def disconnect(self, connection: Connection) -> None:
        """
        Tear down a connection.

        The presence entry is removed only if it still names this
        connection; if a newer connection owns it, the user stays online and
        no offline status is broadcast.
        """
        if connection.state == ConnectionState.DISCONNECTED:
            return
        was_identified = connection.is_identified
        connection.close()
        self.connections.remove(connection.id)
        prometheus_metrics.set_realtime_connections(len(self.connections))

        if not was_identified or connection.user_id is None:
            return

        user_id = connection.user_id
        try:
            removed = await self._bounded(
                "delete", self.presence.delete(user_id, connection.id)
            )
        except (TransientInfraException, asyncio.TimeoutError):
            # Cannot tell whether a newer connection exists; this one is gone either way
            removed = True

        if removed:
            await self.broadcast(
                EVENT_USER_STATUS_CHANGED,
                {"userId": user_id, "status": STATUS_OFFLINE},
                exclude_connection_id=connection.id,
            )
        logger.info(
            "[REALTIME] User disconnected",
            extra={"user_id": user_id, "connection_id": connection.id, "presence_cleared": removed},
        )

    # Inbound

    async def handle(self, connection: Connection, raw: Any) -> None:
        """Dispatch one inbound envelope. Never raises for client mistakes."""
        if connection.state == ConnectionState.DISCONNECTED:
            return
        try:
            envelope = WsInbound.model_validate(raw)
        except ValidationError:
            await self._error(connection, ERROR_INVALID_EVENT, "Malformed event envelope")
            return

        handler = self._handlers.get(envelope.type)
        if handler is None:
            await self._error(connection, ERROR_UNKNOWN_EVENT, f"Unknown event: {envelope.type}")
            return

        requires_identity = handler not in (self._on_identify, self._on_ping)
        if requires_identity and not connection.is_identified:
            await self._error(connection, ERROR_NOT_IDENTIFIED, "Identify before sending events")
            return

        prometheus_metrics.inc_realtime_event(envelope.type, "inbound")
        try:
            await handler(connection, {**envelope.data, "type": envelope.type})
        except ValidationError:
            await self._error(
                connection, ERROR_INVALID_EVENT, f"Invalid payload for {envelope.type}"
            )

    async def _on_identify(self, connection: Connection, data: Dict[str, Any]) -> None:
        payload = IdentifyPayload.model_validate(data)
        user_id = payload.user_id or connection.authenticated_user_id
        if user_id != connection.authenticated_user_id:
            await self._error(
                connection,
                ERROR_IDENTITY_MISMATCH,
                "Connections may only identify as the authenticated user",
            )
            return

        first_identify = not connection.is_identified
        connection.identify(user_id)
        try:
            await self._bounded(
                "set", self.presence.set(user_id, connection.id, self.presence_ttl)
            )
        except (TransientInfraException, asyncio.TimeoutError):
            logger.warning(
                "[PRESENCE] Could not record presence; user will appear offline to other instances",
                extra={"user_id": user_id},
            )

        if first_identify:
            await self.broadcast(
                EVENT_USER_STATUS_CHANGED,
                {"userId": user_id, "status": STATUS_ONLINE},
                exclude_connection_id=connection.id,
            )
        await self._send(connection, EVENT_ONLINE_USERS, {"userIds": await self.online_user_ids()})
        logger.info(
            "[REALTIME] User identified",
            extra={"user_id": user_id, "connection_id": connection.id},
        )

    async def _on_send_message(self, connection: Connection, data: Dict[str, Any]) -> None:
        payload = SendMessagePayload.model_validate(data)
        claimed_sender = _claimed_sender_id(payload.message)
        if claimed_sender is not None and claimed_sender != connection.user_id:
            await self._error(
                connection,
                ERROR_IDENTITY_MISMATCH,
                "Messages may only be relayed as the identified user",
            )
            return
        if not await self._may_reach(connection, payload.recipient_id):
            return
        await self.emit_to_user(payload.recipient_id, EVENT_RECEIVE_MESSAGE, payload.message)

    async def _on_typing(self, connection: Connection, data: Dict[str, Any]) -> None:
        payload = TypingPayload.model_validate(data)
        if not await self._may_reach(connection, payload.recipient_id):
            return
        event = EVENT_USER_TYPING if data["type"] == EVENT_TYPING_START else EVENT_USER_STOPPED_TYPING
        await self.emit_to_user(payload.recipient_id, event, {"userId": connection.user_id})

    async def _on_messages_read(self, connection: Connection, data: Dict[str, Any]) -> None:
        payload = MessagesReadPayload.model_validate(data)
        if not await self._may_reach(connection, payload.sender_id):
            return
        await self.emit_to_user(
            payload.sender_id,
            EVENT_MESSAGES_MARKED_READ,
            {"readBy": connection.user_id, "timestamp": _now_iso()},
        )

    async def _on_ping(self, connection: Connection, data: Dict[str, Any]) -> None:
        if connection.is_identified and connection.user_id:
            user_id = connection.user_id
            try:
                refreshed = await self._bounded(
                    "refresh", self.presence.refresh(user_id, connection.id, self.presence_ttl)
                )
                # A lost entry (failed write, lapsed TTL) is reclaimed; a newer connection's is kept
                if not refreshed and await self._bounded("get", self.presence.get(user_id)) is None:
                    await self._bounded(
                        "set", self.presence.set(user_id, connection.id, self.presence_ttl)
                    )
                    logger.info(
                        "[PRESENCE] Presence entry restored on ping",
                        extra={"user_id": user_id, "connection_id": connection.id},
                    )
            except (TransientInfraException, asyncio.TimeoutError):
                pass
        await self._send(connection, EVENT_PONG, {"timestamp": _now_iso()})

    # Outbound

    async def emit_to_user(self, user_id: str, event: str, data: Dict[str, Any]) -> bool:
        """
        Push ``event`` to the user's active connection, wherever it lives.

        Returns False when the user is offline (or presence is unavailable).
        """
        connection_id = await self.lookup(user_id)
        if connection_id is None:
            return False

        connection = self.connections.get(connection_id)
        if connection is not None:
            return await self._send(connection, event, data)
        if self.relay is not None:
            return await self.relay.publish_direct(connection_id, event, data)
        return False

    async def broadcast(
        self, event: str, data: Dict[str, Any], exclude_connection_id: Optional[str] = None
    ) -> None:
        """Send to every other connection on this instance and, via the relay, on the others."""
        await self._broadcast_local(event, data, exclude_connection_id)
        if self.relay is not None:
            await self.relay.publish_broadcast(event, data, exclude_connection_id)

    async def _broadcast_local(
        self, event: str, data: Dict[str, Any], exclude_connection_id: Optional[str]
    ) -> None:
        targets = self.connections.all(exclude=exclude_connection_id)
        if targets:
            await asyncio.gather(*(self._send(c, event, data) for c in targets))

    async def lookup(self, user_id: str) -> Optional[str]:
        """The user's connection id, or None if offline or presence is unavailable."""
        try:
            return await self._bounded("get", self.presence.get(user_id))
        except (TransientInfraException, asyncio.TimeoutError):
            return None

    async def online_user_ids(self) -> List[str]:
        try:
            return sorted(await self._bounded("list_all", self.presence.list_all()))
        except (TransientInfraException, asyncio.TimeoutError):
            return self.connections.identified_user_ids()

    # Relay

    async def _on_relay_envelope(self, envelope: Dict[str, Any]) -> None:
        event = envelope.get("event")
        data = envelope.get("data") or {}
        if not event:
            return
        kind = envelope.get("kind")
        if kind == KIND_DIRECT:
            connection = self.connections.get(envelope.get("target") or "")
            if connection is not None:
                await self._send(connection, event, data)
        elif kind == KIND_BROADCAST:
            await self._broadcast_local(event, data, envelope.get("exclude"))

    # Helpers

    async def _may_reach(self, connection: Connection, peer_id: str) -> bool:
        """Eligibility for a user-to-user event; answers the sender with an error when denied."""
        allowed = False
        if self.eligibility is not None and connection.user_id:
            try:
                allowed = await asyncio.to_thread(self.eligibility, connection.user_id, peer_id)
            except Exception as e:
                logger.warning(
                    f"[REALTIME] Eligibility check failed, denying: {e}",
                    extra={"user_id": connection.user_id, "peer_id": peer_id},
                )
        if not allowed:
            await self._error(
                connection,
                ERROR_NO_MENTORSHIP_CONNECTION,
                "No accepted mentorship connection with this user",
            )
        return allowed

    async def _bounded(self, operation: str, awaitable: Awaitable[Any]) -> Any:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.presence_timeout)
        except asyncio.TimeoutError:
            prometheus_metrics.inc_presence_failure(operation)
            logger.warning(
                "[PRESENCE] %s timed out after %.2fs; treating user as offline",
                operation,
                self.presence_timeout,
            )
            raise
        except TransientInfraException:
            logger.warning("[PRESENCE] %s failed; treating user as offline", operation)
            raise

    async def _send(self, connection: Connection, event: str, data: Dict[str, Any]) -> bool:
        sent = await connection.send(event, data)
        if sent:
            prometheus_metrics.inc_realtime_event(event, "outbound")
        return sent

    async def _error(self, connection: Connection, code: str, message: str) -> None:
        await self._send(connection, EVENT_ERROR, {"code": code, "message": message})


_gateway: Optional[RealtimeGateway] = None


def get_gateway() -> Optional[RealtimeGateway]:
    """The process-wide gateway, or None before startup."""
    return _gateway


def set_gateway(gateway: Optional[RealtimeGateway]) -> None:
    global _gateway
    _gateway = gateway
