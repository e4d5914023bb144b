"""Wire envelopes exchanged with the signaling relay.

Every frame is a JSON object ``{"event": <name>, "data": {...}}``. Negotiation
payloads (``offer``, ``answer``, ``candidate``) are kept as opaque JSON values.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

ClientEvent = Literal["join-room", "leave-room", "offer", "answer", "ice-candidate"]
NEGOTIATION_EVENTS: dict[str, str] = {
    "offer": "offer",
    "answer": "answer",
    "ice-candidate": "candidate",
}


class Envelope(BaseModel):
    event: str
    data: dict[str, Any] = Field(default_factory=dict)


class ClientEnvelope(Envelope):
    event: ClientEvent


class RoomRequest(BaseModel):
    room: str = Field(min_length=1)


class RoomJoined(BaseModel):
    occupancy: int


class RoomFull(BaseModel):
    pass


class PeerEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId")
    occupancy: int


def envelope(event: str, payload: BaseModel | dict[str, Any] | None = None) -> dict[str, Any]:
    if isinstance(payload, BaseModel):
        data = payload.model_dump(by_alias=True)
    else:
        data = dict(payload or {})
    return {"event": event, "data": data}


def room_joined(occupancy: int) -> dict[str, Any]:
    return envelope("roomJoined", RoomJoined(occupancy=occupancy))


def room_full() -> dict[str, Any]:
    return envelope("roomFull", RoomFull())


def user_joined(user_id: str, occupancy: int) -> dict[str, Any]:
    return envelope("userJoined", PeerEvent(user_id=user_id, occupancy=occupancy))


def user_left(user_id: str, occupancy: int) -> dict[str, Any]:
    return envelope("userLeft", PeerEvent(user_id=user_id, occupancy=occupancy))


def negotiation(event: str, payload: Any, sender_id: str) -> dict[str, Any]:
    """Pass-through of a negotiation payload, tagged with its sender."""

    return envelope(event, {NEGOTIATION_EVENTS[event]: payload, "from": sender_id})
