"""Party-blind routing of negotiation messages between the two occupants of a room."""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from relay import messages
from relay.registry import JoinResult, LeaveResult, RoomRegistry

LOGGER = logging.getLogger(__name__)


@dataclass(eq=False)
class RelayConnection:
    """One live client link to the relay.

    Outbound messages go through an unbounded queue drained by the transport
    writer, so delivering never waits on the peer's socket.
    """

    occupant_id: str
    current_room: str | None = None
    closed: bool = False
    outbox: asyncio.Queue[dict[str, Any] | None] = field(default_factory=asyncio.Queue)

    def deliver(self, message: dict[str, Any]) -> None:
        if self.closed:
            return
        self.outbox.put_nowait(message)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.outbox.put_nowait(None)

    async def outgoing(self) -> AsyncIterator[dict[str, Any]]:
        while True:
            message = await self.outbox.get()
            if message is None:
                return
            yield message


class SignalingRelay:
    """Routes room membership events and negotiation messages.

    The relay never looks inside offers, answers or candidates. A message from
    an occupant is delivered to the other current occupant of its room only.
    """

    def __init__(self, registry: RoomRegistry | None = None) -> None:
        self.registry = registry or RoomRegistry()
        self._connections: dict[str, RelayConnection] = {}

    @property
    def room_count(self) -> int:
        return self.registry.room_count

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def connection(self, occupant_id: str) -> RelayConnection | None:
        return self._connections.get(occupant_id)

    def connect(self, occupant_id: str | None = None) -> RelayConnection:
        conn = RelayConnection(occupant_id=occupant_id or str(uuid.uuid4()))
        self._connections[conn.occupant_id] = conn
        LOGGER.info("User connected: %s", conn.occupant_id)
        return conn

    async def disconnect(self, occupant_id: str) -> None:
        """Release everything held by a connection; safe after abrupt termination."""

        conn = self._connections.pop(occupant_id, None)
        if conn is None:
            return
        LOGGER.info("User disconnected: %s", occupant_id)
        if conn.current_room is not None:
            await self._leave(conn, conn.current_room)
        conn.close()

    async def handle(self, occupant_id: str, raw: dict[str, Any]) -> None:
        """Dispatch one client envelope. Malformed input is logged and ignored."""

        try:
            msg = messages.ClientEnvelope.model_validate(raw)
            request = messages.RoomRequest.model_validate(msg.data)
        except ValidationError as exc:
            LOGGER.warning("Ignoring malformed message from %s: %s", occupant_id, exc.errors(include_url=False))
            return

        if msg.event == "join-room":
            await self.join(occupant_id, request.room)
        elif msg.event == "leave-room":
            await self.leave(occupant_id, request.room)
        else:
            payload = msg.data.get(messages.NEGOTIATION_EVENTS[msg.event])
            self.forward(occupant_id, msg.event, request.room, payload)

    async def join(self, occupant_id: str, room_id: str) -> JoinResult | None:
        conn = self._connections.get(occupant_id)
        if conn is None:
            return None

        if conn.current_room is not None and conn.current_room != room_id:
            await self._leave(conn, conn.current_room)

        result = await self.registry.join(room_id, occupant_id)
        if conn.closed:
            # Disconnected while waiting for the room; undo.
            if result.accepted:
                await self.registry.leave(room_id, occupant_id)
            return result

        if not result.accepted:
            conn.deliver(messages.room_full())
            return result

        conn.current_room = room_id
        conn.deliver(messages.room_joined(result.occupancy))
        if not result.already_member:
            for peer_id in result.peers:
                peer = self._connections.get(peer_id)
                if peer is not None:
                    peer.deliver(messages.user_joined(occupant_id, result.occupancy))
        return result

    async def leave(self, occupant_id: str, room_id: str) -> LeaveResult | None:
        conn = self._connections.get(occupant_id)
        if conn is None:
            return None
        return await self._leave(conn, room_id)

    async def _leave(self, conn: RelayConnection, room_id: str) -> LeaveResult:
        if conn.current_room == room_id:
            conn.current_room = None

        result = await self.registry.leave(room_id, conn.occupant_id)
        if result.was_member:
            for peer_id in result.remaining:
                peer = self._connections.get(peer_id)
                if peer is not None:
                    peer.deliver(messages.user_left(conn.occupant_id, result.occupancy))
        return result

    def forward(self, occupant_id: str, event: str, room_id: str, payload: Any) -> int:
        """Relay a negotiation message verbatim. Returns the number of recipients."""

        conn = self._connections.get(occupant_id)
        if conn is None or conn.current_room != room_id:
            LOGGER.warning("Dropping %s from %s: not in room %s", event, occupant_id, room_id)
            return 0

        occupants = self.registry.occupants(room_id)
        if occupant_id not in occupants:
            LOGGER.warning("Dropping %s from %s: no longer in room %s", event, occupant_id, room_id)
            return 0

        LOGGER.debug("Relaying %s in room %s", event, room_id)
        message = messages.negotiation(event, payload, occupant_id)
        delivered = 0
        for peer_id in occupants:
            if peer_id == occupant_id:
                continue
            peer = self._connections.get(peer_id)
            if peer is not None:
                peer.deliver(message)
                delivered += 1
        return delivered
