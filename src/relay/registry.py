from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Final

LOGGER = logging.getLogger(__name__)

MAX_OCCUPANTS: Final[int] = 2


@dataclass(slots=True)
class Room:
    room_id: str
    occupants: set[str] = field(default_factory=set)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def occupancy(self) -> int:
        return len(self.occupants)


@dataclass(frozen=True, slots=True)
class JoinResult:
    accepted: bool
    occupancy: int
    # Occupants other than the joiner, as of the decision.
    peers: tuple[str, ...] = ()
    already_member: bool = False


@dataclass(frozen=True, slots=True)
class LeaveResult:
    occupancy: int
    remaining: tuple[str, ...] = ()
    was_member: bool = False


class RoomRegistry:
    """In-memory room table capped at two occupants per room.

    Every mutation of a room runs under that room's own lock, so concurrent
    joins against one room are serialized while different rooms never contend.
    A room row exists only while it has occupants.
    """

    def __init__(self, max_occupants: int = MAX_OCCUPANTS) -> None:
        self._max_occupants = max_occupants
        self._rooms: dict[str, Room] = {}

    @property
    def room_count(self) -> int:
        return len(self._rooms)

    def occupancy(self, room_id: str) -> int:
        room = self._rooms.get(room_id)
        return room.occupancy if room else 0

    def occupants(self, room_id: str) -> frozenset[str]:
        room = self._rooms.get(room_id)
        return frozenset(room.occupants) if room else frozenset()

    def __contains__(self, room_id: object) -> bool:
        return room_id in self._rooms

    async def join(self, room_id: str, occupant_id: str) -> JoinResult:
        while True:
            room = self._rooms.setdefault(room_id, Room(room_id))
            async with room.lock:
                # The row may have been destroyed while we waited for its lock.
                if self._rooms.get(room_id) is not room:
                    continue

                peers = tuple(sorted(o for o in room.occupants if o != occupant_id))
                member = occupant_id in room.occupants

                # A full room rejects every join, its own members' included.
                if room.occupancy >= self._max_occupants:
                    LOGGER.info("Room %s is full; rejecting %s", room_id, occupant_id)
                    return JoinResult(False, room.occupancy, peers, already_member=member)

                if member:
                    return JoinResult(True, room.occupancy, peers, already_member=True)

                room.occupants.add(occupant_id)
                LOGGER.info("Occupant %s joined room %s (occupancy %d)", occupant_id, room_id, room.occupancy)
                return JoinResult(True, room.occupancy, peers)

    async def leave(self, room_id: str, occupant_id: str) -> LeaveResult:
        room = self._rooms.get(room_id)
        if room is None:
            return LeaveResult(0)

        async with room.lock:
            if self._rooms.get(room_id) is not room or occupant_id not in room.occupants:
                return LeaveResult(self.occupancy(room_id))

            room.occupants.discard(occupant_id)
            if not room.occupants:
                del self._rooms[room_id]
                LOGGER.info("Room %s deleted (empty)", room_id)
                return LeaveResult(0, was_member=True)

            LOGGER.info("Occupant %s left room %s (occupancy %d)", occupant_id, room_id, room.occupancy)
            return LeaveResult(room.occupancy, tuple(sorted(room.occupants)), was_member=True)
