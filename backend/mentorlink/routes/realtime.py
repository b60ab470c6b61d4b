# backend/mentorlink/routes/realtime.py
"""
Realtime WebSocket endpoint.

Clients connect to ``/ws?token=<jwt>`` and exchange ``{"type", "data"}``
envelopes. Event routing lives in RealtimeGateway; this module only owns
the socket lifecycle.

Close codes:
    4001: Authentication failed
    1011: Realtime gateway not running
"""

import asyncio
import json
import logging
from typing import Any, Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from ..auth import authenticate_websocket_token
from ..services.messaging import get_gateway

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])

WS_CLOSE_AUTH_FAILED = 4001


def _decode_frame(text: str) -> Any:
    try:
        return json.loads(text)
    except ValueError:
        # The gateway answers with INVALID_EVENT
        return text


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket, token: Optional[str] = Query(None)) -> None:
    user = await asyncio.to_thread(authenticate_websocket_token, token)
    if user is None:
        logger.warning("[REALTIME] WebSocket authentication failed")
        await websocket.close(code=WS_CLOSE_AUTH_FAILED, reason="Authentication failed")
        return

    gateway = get_gateway()
    if gateway is None:
        logger.error("[REALTIME] WebSocket rejected, gateway not started")
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        return

    await websocket.accept()
    connection = await gateway.connect(websocket, user.id)
    try:
        while True:
            text = await websocket.receive_text()
            await gateway.handle(connection, _decode_frame(text))
    except WebSocketDisconnect:
        logger.debug(
            "[REALTIME] Client closed socket",
            extra={"connection_id": connection.id, "user_id": user.id},
        )
    finally:
        await gateway.disconnect(connection)
