"""WebSocket endpoint carrying the relay protocol.

Each connection gets an occupant id, a reader loop feeding the relay and a
writer task draining the connection's outbox. Whatever ends the connection,
its room membership is released in ``finally``.
"""

from __future__ import annotations

import asyncio
import json
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from api.dependencies import get_relay
from relay.relay import RelayConnection, SignalingRelay

LOGGER = logging.getLogger(__name__)

router = APIRouter()


async def _drain_outbox(websocket: WebSocket, conn: RelayConnection) -> None:
    try:
        async for message in conn.outgoing():
            await websocket.send_text(json.dumps(message))
    except (WebSocketDisconnect, RuntimeError):
        LOGGER.debug("Stopped writing to %s: socket closed", conn.occupant_id)


@router.websocket("/ws")
async def signaling_socket(websocket: WebSocket, relay: SignalingRelay = Depends(get_relay)) -> None:
    await websocket.accept()
    conn = relay.connect()
    writer = asyncio.create_task(_drain_outbox(websocket, conn))

    try:
        while True:
            text = await websocket.receive_text()
            try:
                raw = json.loads(text)
            except json.JSONDecodeError:
                LOGGER.warning("Ignoring non-JSON frame from %s", conn.occupant_id)
                continue
            if not isinstance(raw, dict):
                LOGGER.warning("Ignoring non-object frame from %s", conn.occupant_id)
                continue
            await relay.handle(conn.occupant_id, raw)
    except WebSocketDisconnect:
        LOGGER.info("WebSocket closed for %s", conn.occupant_id)
    except Exception:
        LOGGER.exception("Relay connection %s failed", conn.occupant_id)
    finally:
        await relay.disconnect(conn.occupant_id)
        try:
            await asyncio.wait_for(writer, timeout=1.0)
        except asyncio.TimeoutError:
            LOGGER.debug("Writer for %s did not finish; cancelled", conn.occupant_id)
