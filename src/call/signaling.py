from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import websockets

from config.settings import get_settings

LOGGER = logging.getLogger(__name__)

EventHandler = Callable[[str, dict[str, Any]], Awaitable[None]]


class SignalingClient:
    """WebSocket link from a calling party to the signaling relay.

    Incoming events are handed to the handler one at a time, in arrival order,
    so ICE candidates are applied in the order the relay delivered them.
    """

    def __init__(self, url: str | None = None) -> None:
        self._url = url or get_settings().signaling_url
        self._ws: websockets.ClientConnection | None = None

    @property
    def connected(self) -> bool:
        return self._ws is not None

    async def connect(self) -> None:
        LOGGER.info("Connecting to signaling relay: %s", self._url)
        self._ws = await websockets.connect(self._url, ping_interval=20, ping_timeout=20)

    async def close(self) -> None:
        if self._ws is not None:
            await self._ws.close()
            self._ws = None

    async def __aenter__(self) -> SignalingClient:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def emit(self, event: str, data: dict[str, Any]) -> None:
        if self._ws is None:
            raise RuntimeError("Signaling client is not connected")
        LOGGER.debug("Socket emit: %s", event)
        await self._ws.send(json.dumps({"event": event, "data": data}))

    async def listen(self, handler: EventHandler) -> None:
        """Dispatch relay events until the connection closes."""

        if self._ws is None:
            raise RuntimeError("Signaling client is not connected")

        async for message in self._ws:
            try:
                envelope = json.loads(message)
            except json.JSONDecodeError:
                LOGGER.warning("Ignoring non-JSON frame from relay")
                continue
            if not isinstance(envelope, dict):
                continue

            event = str(envelope.get("event") or "")
            data = envelope.get("data") or {}
            if not event or not isinstance(data, dict):
                continue
            await handler(event, data)
