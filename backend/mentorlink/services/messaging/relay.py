# backend/mentorlink/services/messaging/relay.py
"""
Cross-instance relay for realtime events.

Every gateway instance subscribes once to a single Broadcaster channel.
Envelopes look like::

    {
        "origin": "<instance id>",
        "kind": "direct" | "broadcast",
        "event": "<outbound event type>",
        "data": {...},
        "target": "<connection id>",        # direct only
        "exclude": "<connection id>|null",  # broadcast only
    }

Instances skip their own envelopes. A failed publish is logged and counted
and never raised, since the durable store already holds the data.
"""

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from broadcaster import Broadcast

from ...monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

KIND_DIRECT = "direct"
KIND_BROADCAST = "broadcast"

EnvelopeHandler = Callable[[Dict[str, Any]], Awaitable[None]]


class RealtimeRelay:
    def __init__(
        self,
        broadcast: Broadcast,
        *,
        channel: str,
        instance_id: str,
        ready_timeout: float = 5.0,
    ):
        self.broadcast = broadcast
        self.channel = channel
        self.instance_id = instance_id
        self.ready_timeout = ready_timeout
        self._handler: Optional[EnvelopeHandler] = None
        self._reader: Optional[asyncio.Task] = None
        self._ready = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self._reader is not None and not self._reader.done()

    async def start(self, handler: EnvelopeHandler) -> None:
        """Subscribe and return once the subscription is live."""
        if self.is_running:
            return
        self._handler = handler
        self._ready = asyncio.Event()
        self._reader = asyncio.create_task(self._read_loop())
        try:
            await asyncio.wait_for(self._ready.wait(), timeout=self.ready_timeout)
        except asyncio.TimeoutError:
            await self.stop()
            raise
        logger.info(
            "[RELAY] Subscribed to %s as instance %s",
            self.channel,
            self.instance_id,
        )

    async def stop(self) -> None:
        if self._reader is None:
            return
        self._reader.cancel()
        try:
            await self._reader
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.warning(f"[RELAY] Reader ended with error: {e}")
        self._reader = None
        logger.info("[RELAY] Unsubscribed from %s", self.channel)

    async def _read_loop(self) -> None:
        async with self.broadcast.subscribe(channel=self.channel) as subscriber:
            self._ready.set()
            async for event in subscriber:
                await self._dispatch(event.message)

    async def _dispatch(self, raw: str) -> None:
        try:
            envelope = json.loads(raw)
        except (TypeError, json.JSONDecodeError) as e:
            logger.warning(f"[RELAY] Invalid JSON on relay channel: {e}")
            return

        if envelope.get("origin") == self.instance_id or self._handler is None:
            return
        try:
            await self._handler(envelope)
        except Exception as e:
            logger.error(f"[RELAY] Failed to handle relayed envelope: {e}", exc_info=True)

    async def _publish(self, envelope: Dict[str, Any]) -> bool:
        envelope["origin"] = self.instance_id
        kind = envelope.get("kind", "unknown")
        try:
            await self.broadcast.publish(channel=self.channel, message=json.dumps(envelope))
        except Exception as e:
            prometheus_metrics.inc_relay_publish(kind, "error")
            logger.warning(
                "[RELAY] Publish failed: %s",
                e,
                extra={"kind": kind, "event": envelope.get("event")},
            )
            return False
        prometheus_metrics.inc_relay_publish(kind, "success")
        return True

    async def publish_direct(self, connection_id: str, event: str, data: Dict[str, Any]) -> bool:
        return await self._publish(
            {"kind": KIND_DIRECT, "event": event, "data": data, "target": connection_id}
        )

    async def publish_broadcast(
        self, event: str, data: Dict[str, Any], exclude_connection_id: Optional[str] = None
    ) -> bool:
        return await self._publish(
            {
                "kind": KIND_BROADCAST,
                "event": event,
                "data": data,
                "exclude": exclude_connection_id,
            }
        )
