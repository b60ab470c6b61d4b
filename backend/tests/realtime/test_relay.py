# backend/tests/realtime/test_relay.py
"""
Cross-instance delivery through the Broadcaster relay.

Two gateways share one in-memory Broadcast and one presence directory,
standing in for two backend instances behind a load balancer.
"""

import asyncio
import json
from typing import Any, Dict, List
from unittest.mock import AsyncMock, MagicMock

from broadcaster import Broadcast
import pytest

from mentorlink.core.broadcast import connect_broadcast, disconnect_broadcast
from mentorlink.services.messaging import RealtimeGateway, RealtimeRelay
from mentorlink.services.presence.local import LocalPresenceDirectory


class FakeSocket:
    def __init__(self) -> None:
        self.sent: List[Dict[str, Any]] = []

    async def send_json(self, data: Any) -> None:
        self.sent.append(data)

    def events(self, event_type: str) -> List[Dict[str, Any]]:
        return [m["data"] for m in self.sent if m["type"] == event_type]


async def wait_for_event(socket: FakeSocket, event_type: str, timeout: float = 2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while asyncio.get_running_loop().time() < deadline:
        events = socket.events(event_type)
        if events:
            return events
        await asyncio.sleep(0.01)
    pytest.fail(f"{event_type} was never delivered")


async def online(gateway: RealtimeGateway, user_id: str):
    socket = FakeSocket()
    connection = await gateway.connect(socket, user_id)
    await gateway.handle(connection, {"type": "identify", "data": {"userId": user_id}})
    return connection, socket


class TestCrossInstanceDelivery:
    @pytest.mark.asyncio
    async def test_events_reach_users_on_other_instance(self):
        broadcast = Broadcast("memory://")
        await broadcast.connect()
        presence = LocalPresenceDirectory()
        instance_a = RealtimeGateway(
            presence, relay=RealtimeRelay(broadcast, channel="test-relay", instance_id="a")
        )
        instance_b = RealtimeGateway(
            presence,
            relay=RealtimeRelay(broadcast, channel="test-relay", instance_id="b"),
            eligibility=lambda a, b: {a, b} == {"alice", "bob"},
        )
        await instance_a.start()
        await instance_b.start()
        try:
            _, alice_socket = await online(instance_a, "alice")
            bob, bob_socket = await online(instance_b, "bob")

            status_changes = await wait_for_event(alice_socket, "user_status_changed")
            assert status_changes == [{"userId": "bob", "status": "online"}]

            message = {"_id": "m1", "content": "Hello from A"}
            assert await instance_a.emit_to_user("bob", "receive_message", message) is True
            assert await wait_for_event(bob_socket, "receive_message") == [message]

            await instance_b.handle(
                bob, {"type": "typing_start", "data": {"recipientId": "alice"}}
            )
            assert await wait_for_event(alice_socket, "user_typing") == [{"userId": "bob"}]

            await instance_b.disconnect(bob)
            offline = [
                {"userId": "bob", "status": "offline"},
            ]
            deadline = asyncio.get_running_loop().time() + 2.0
            while alice_socket.events("user_status_changed")[1:] != offline:
                assert asyncio.get_running_loop().time() < deadline
                await asyncio.sleep(0.01)
        finally:
            await instance_a.stop()
            await instance_b.stop()
            await broadcast.disconnect()

    @pytest.mark.asyncio
    async def test_instance_ignores_its_own_envelopes(self):
        broadcast = Broadcast("memory://")
        await broadcast.connect()
        gateway = RealtimeGateway(
            LocalPresenceDirectory(),
            relay=RealtimeRelay(broadcast, channel="test-relay", instance_id="solo"),
        )
        await gateway.start()
        try:
            _, observer_socket = await online(gateway, "observer")
            await online(gateway, "alice")
            await asyncio.sleep(0.05)

            # Delivered once locally; the relayed copy is skipped
            assert observer_socket.events("user_status_changed") == [
                {"userId": "alice", "status": "online"}
            ]
        finally:
            await gateway.stop()
            await broadcast.disconnect()


class TestRelay:
    @pytest.mark.asyncio
    async def test_publish_failure_is_reported_not_raised(self):
        broadcast = MagicMock()
        broadcast.publish = AsyncMock(side_effect=ConnectionError("relay down"))
        relay = RealtimeRelay(broadcast, channel="test-relay", instance_id="a")

        assert await relay.publish_direct("conn-1", "receive_message", {}) is False
        assert await relay.publish_broadcast("user_status_changed", {}) is False

    @pytest.mark.asyncio
    async def test_publish_stamps_origin(self):
        broadcast = MagicMock()
        broadcast.publish = AsyncMock()
        relay = RealtimeRelay(broadcast, channel="test-relay", instance_id="a")

        assert await relay.publish_direct("conn-1", "pong", {"timestamp": "t"}) is True

        kwargs = broadcast.publish.await_args.kwargs
        assert kwargs["channel"] == "test-relay"
        assert json.loads(kwargs["message"]) == {
            "origin": "a",
            "kind": "direct",
            "event": "pong",
            "data": {"timestamp": "t"},
            "target": "conn-1",
        }

    @pytest.mark.asyncio
    async def test_invalid_envelope_is_dropped(self):
        handler = AsyncMock()
        relay = RealtimeRelay(MagicMock(), channel="test-relay", instance_id="a")
        relay._handler = handler

        await relay._dispatch("{not json")
        await relay._dispatch(json.dumps({"origin": "a", "kind": "direct"}))
        await relay._dispatch(json.dumps({"origin": "b", "kind": "direct"}))

        handler.assert_awaited_once_with({"origin": "b", "kind": "direct"})

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        broadcast = Broadcast("memory://")
        await broadcast.connect()
        relay = RealtimeRelay(broadcast, channel="test-relay", instance_id="a")
        try:
            await relay.start(AsyncMock())
            assert relay.is_running

            await relay.stop()
            assert not relay.is_running
        finally:
            await broadcast.disconnect()


class TestBroadcastLifecycle:
    @pytest.mark.asyncio
    async def test_connect_requires_url(self):
        with pytest.raises(RuntimeError):
            await connect_broadcast(url="")

    @pytest.mark.asyncio
    async def test_connect_and_disconnect_memory_backend(self):
        broadcast = await connect_broadcast(url="memory://")
        try:
            assert isinstance(broadcast, Broadcast)
        finally:
            await disconnect_broadcast()
