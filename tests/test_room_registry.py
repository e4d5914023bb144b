from __future__ import annotations

import asyncio

from relay.registry import RoomRegistry

ROOM = "1111111111"


def test_join_leave_scenarios() -> None:
    async def scenario():
        registry = RoomRegistry()

        # X joins an empty room.
        x = await registry.join(ROOM, "X")
        assert (x.accepted, x.occupancy, x.peers) == (True, 1, ())

        # Y joins and finds X.
        y = await registry.join(ROOM, "Y")
        assert (y.accepted, y.occupancy, y.peers) == (True, 2, ("X",))

        # Z is turned away.
        z = await registry.join(ROOM, "Z")
        assert z.accepted is False
        assert registry.occupancy(ROOM) == 2
        assert registry.occupants(ROOM) == {"X", "Y"}

        # X leaves; Y remains.
        left = await registry.leave(ROOM, "X")
        assert (left.occupancy, left.remaining, left.was_member) == (1, ("Y",), True)
        assert ROOM in registry

        # Y leaves; the room disappears.
        left = await registry.leave(ROOM, "Y")
        assert left.occupancy == 0
        assert ROOM not in registry
        assert registry.occupancy(ROOM) == 0
        assert registry.room_count == 0

    asyncio.run(scenario())


def test_leave_is_idempotent() -> None:
    async def scenario():
        registry = RoomRegistry()
        assert (await registry.leave("nowhere", "X")).was_member is False

        await registry.join(ROOM, "X")
        result = await registry.leave(ROOM, "stranger")
        assert result.was_member is False
        assert result.occupancy == 1
        assert registry.occupancy(ROOM) == 1

    asyncio.run(scenario())


def test_repeated_join_does_not_change_occupancy() -> None:
    async def scenario():
        registry = RoomRegistry()
        await registry.join(ROOM, "X")
        again = await registry.join(ROOM, "X")
        assert again.accepted is True
        assert again.already_member is True
        assert again.occupancy == 1

    asyncio.run(scenario())


def test_repeated_join_into_full_room_is_rejected() -> None:
    async def scenario():
        registry = RoomRegistry()
        await registry.join(ROOM, "X")
        await registry.join(ROOM, "Y")

        again = await registry.join(ROOM, "X")
        assert again.accepted is False
        assert again.already_member is True
        assert again.occupancy == 2
        # Membership is untouched by the rejection.
        assert registry.occupants(ROOM) == {"X", "Y"}

    asyncio.run(scenario())


def test_concurrent_joins_never_exceed_two() -> None:
    async def scenario():
        registry = RoomRegistry()
        results = await asyncio.gather(*(registry.join(ROOM, f"user-{i}") for i in range(5)))
        return registry, results

    registry, results = asyncio.run(scenario())
    accepted = [r for r in results if r.accepted]
    assert len(accepted) == 2
    assert sorted(r.occupancy for r in accepted) == [1, 2]
    assert registry.occupancy(ROOM) == 2


def test_two_concurrent_joins_into_half_full_room_admit_exactly_one() -> None:
    async def scenario():
        registry = RoomRegistry()
        await registry.join(ROOM, "X")
        results = await asyncio.gather(registry.join(ROOM, "A"), registry.join(ROOM, "B"))
        return registry, results

    registry, results = asyncio.run(scenario())
    assert [r.accepted for r in results].count(True) == 1
    assert registry.occupancy(ROOM) == 2


def test_join_waiting_on_destroyed_room_retries_on_fresh_row() -> None:
    async def scenario():
        registry = RoomRegistry()
        await registry.join(ROOM, "X")
        room = registry._rooms[ROOM]

        async with room.lock:
            pending = asyncio.create_task(registry.join(ROOM, "Y"))
            await asyncio.sleep(0)
            # Simulate the last occupant leaving while Y waits.
            room.occupants.clear()
            del registry._rooms[ROOM]

        result = await pending
        return registry, result

    registry, result = asyncio.run(scenario())
    assert result.accepted is True
    assert result.occupancy == 1
    assert registry.occupants(ROOM) == {"Y"}


def test_rooms_are_independent() -> None:
    async def scenario():
        registry = RoomRegistry()
        await registry.join("1111111111", "X")
        await registry.join("1111111111", "Y")
        other = await registry.join("2222222222", "Z")
        assert other.accepted is True
        assert registry.room_count == 2

    asyncio.run(scenario())
