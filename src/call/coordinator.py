"""Per-call negotiation state machine of one calling party."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from enum import Enum
from typing import Any

from call.errors import (
    InvalidSecretError,
    MediaCaptureError,
    RoomFullError,
    SecureCallError,
    TransportFailedError,
)
from call.transport import (
    EncodedStreams,
    MediaDevices,
    MediaSink,
    MediaStream,
    PeerConnection,
    PeerConnectionFactory,
    SignalingChannel,
    TrackEvent,
)
from config.settings import get_settings
from e2ee.frame_cipher import FrameCipher
from e2ee.keys import derive_key_async, is_valid_secret
from e2ee.pipeline import Direction, FrameTransformer

LOGGER = logging.getLogger(__name__)

TERMINAL_CONNECTION_STATES = frozenset({"disconnected", "failed"})


class CallState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    WAITING = "waiting"
    IN_CALL = "incall"


class CallCoordinator:
    """Drives one party through join, negotiation and teardown.

    Role tie-break: the party whose own join raised the room to two occupants
    (it receives ``roomJoined`` with occupancy 2) creates the offer. The party
    that was already waiting only ever answers.

    Every call gets a fresh FrameCipher from a fresh key derivation; it is
    attached to each outbound track before the offer or answer is sent and to
    each inbound track as it arrives, and discarded on teardown.
    """

    def __init__(
        self,
        signaling: SignalingChannel,
        peer_factory: PeerConnectionFactory,
        media_devices: MediaDevices,
        *,
        local_sink: MediaSink | None = None,
        remote_sink: MediaSink | None = None,
        ice_servers: Sequence[str] | None = None,
        on_state_change: Callable[[CallState], None] | None = None,
        on_error: Callable[[SecureCallError], None] | None = None,
    ) -> None:
        self._signaling = signaling
        self._peer_factory = peer_factory
        self._media = media_devices
        self._local_sink = local_sink
        self._remote_sink = remote_sink
        self._ice_servers = list(ice_servers if ice_servers is not None else get_settings().ice_servers)
        self._on_state_change = on_state_change
        self._on_error = on_error

        self.state = CallState.IDLE
        self.occupancy = 0
        self._generation = 0
        self._closing = False
        self._room: str | None = None
        self._cipher: FrameCipher | None = None
        self._local_stream: MediaStream | None = None
        self._pc: PeerConnection | None = None
        self._transformers: list[FrameTransformer] = []
        self._pumps: list[asyncio.Task] = []

    @property
    def room(self) -> str | None:
        return self._room

    @property
    def cipher(self) -> FrameCipher | None:
        return self._cipher

    @property
    def peer_connection(self) -> PeerConnection | None:
        return self._pc

    @property
    def transformers(self) -> tuple[FrameTransformer, ...]:
        return tuple(self._transformers)

    # ------------------------------------------------------------------
    # User actions

    async def join(self, secret: str) -> None:
        """Start a call in the room named by ``secret``.

        Raises:
            InvalidSecretError: the secret is not exactly 10 digits; nothing happened.
            MediaCaptureError: capture failed; no join was submitted.
        """

        if self.state is not CallState.IDLE:
            raise SecureCallError("A call is already in progress.")
        if not is_valid_secret(secret):
            raise InvalidSecretError()

        self._generation += 1
        generation = self._generation
        self._set_state(CallState.CONNECTING)

        key = await derive_key_async(secret)
        if generation != self._generation:
            return
        self._cipher = FrameCipher(key)

        try:
            stream = await self._media.get_user_media(audio=True, video=True)
        except Exception as exc:
            LOGGER.exception("Error accessing media devices")
            if generation == self._generation:
                await self._teardown()
            raise MediaCaptureError() from exc

        if generation != self._generation:
            _stop_stream(stream)
            return
        self._local_stream = stream
        if self._local_sink is not None:
            self._local_sink.attach(stream)

        self._room = secret
        try:
            await self._signaling.emit("join-room", {"room": secret})
        except Exception as exc:
            LOGGER.exception("Could not reach the signaling relay")
            self._room = None
            await self._teardown()
            raise TransportFailedError("Could not reach the signaling relay.") from exc

    async def hang_up(self) -> None:
        await self._teardown()

    def set_audio_enabled(self, enabled: bool) -> bool:
        return self._set_tracks_enabled("audio", enabled)

    def set_video_enabled(self, enabled: bool) -> bool:
        return self._set_tracks_enabled("video", enabled)

    # ------------------------------------------------------------------
    # Relay events

    async def handle_event(self, event: str, data: dict[str, Any]) -> None:
        """Apply one relay event. Intended as the SignalingClient.listen handler."""

        if self.state is CallState.IDLE or self._closing:
            LOGGER.debug("Ignoring %s: no active call", event)
            return

        handler = {
            "roomJoined": self._on_room_joined,
            "roomFull": self._on_room_full,
            "userJoined": self._on_user_joined,
            "userLeft": self._on_user_left,
            "offer": self._on_offer,
            "answer": self._on_answer,
            "ice-candidate": self._on_remote_candidate,
        }.get(event)
        if handler is None:
            LOGGER.debug("Ignoring unknown relay event %s", event)
            return

        generation = self._generation
        try:
            await handler(data)
        except Exception:
            if generation != self._generation:
                LOGGER.info("Handling %s failed after the call ended", event, exc_info=True)
                return
            LOGGER.exception("Handling %s failed; ending call", event)
            self._report(TransportFailedError())
            await self._teardown()

    async def _on_room_joined(self, data: dict[str, Any]) -> None:
        self.occupancy = int(data.get("occupancy", 0))
        if self.occupancy == 1:
            self._set_state(CallState.WAITING)
        elif self.occupancy == 2:
            await self._start_as_initiator()

    async def _on_room_full(self, data: dict[str, Any]) -> None:
        # The relay made no membership change, so there is nothing to leave.
        self._room = None
        self._report(RoomFullError())
        await self._teardown()

    async def _on_user_joined(self, data: dict[str, Any]) -> None:
        self.occupancy = int(data.get("occupancy", self.occupancy))
        LOGGER.info("Peer %s joined; waiting for their offer", data.get("userId"))

    async def _on_user_left(self, data: dict[str, Any]) -> None:
        self.occupancy = int(data.get("occupancy", 0))
        LOGGER.info("Peer %s left the room", data.get("userId"))
        await self._teardown()

    async def _on_offer(self, data: dict[str, Any]) -> None:
        if self._pc is not None:
            LOGGER.warning("Ignoring offer: a connection already exists")
            return
        await self._start_as_responder(data.get("offer"))

    async def _on_answer(self, data: dict[str, Any]) -> None:
        if self._pc is None:
            LOGGER.warning("Dropping answer: no connection")
            return
        await self._pc.set_remote_description(data.get("answer"))

    async def _on_remote_candidate(self, data: dict[str, Any]) -> None:
        if self._pc is None:
            LOGGER.debug("Dropping ICE candidate received before a connection exists")
            return
        try:
            await self._pc.add_ice_candidate(data.get("candidate"))
        except Exception:
            # A rejected candidate is dropped; the call stays up.
            LOGGER.warning("Dropping ICE candidate the transport rejected", exc_info=True)

    # ------------------------------------------------------------------
    # Negotiation

    async def _start_as_initiator(self) -> None:
        if self._pc is not None or self._closing:
            return
        generation = self._generation
        pc = self._create_peer_connection()

        offer = await pc.create_offer()
        if not self._is_current(pc, generation):
            return
        await pc.set_local_description(offer)
        if not self._is_current(pc, generation):
            return
        await self._signaling.emit("offer", {"room": self._room, "offer": offer})
        self._set_state(CallState.IN_CALL)

    async def _start_as_responder(self, offer: Any) -> None:
        if self._closing:
            return
        generation = self._generation
        pc = self._create_peer_connection()

        await pc.set_remote_description(offer)
        if not self._is_current(pc, generation):
            return
        answer = await pc.create_answer()
        if not self._is_current(pc, generation):
            return
        await pc.set_local_description(answer)
        if not self._is_current(pc, generation):
            return
        await self._signaling.emit("answer", {"room": self._room, "answer": answer})
        self._set_state(CallState.IN_CALL)

    def _is_current(self, pc: PeerConnection, generation: int) -> bool:
        return not self._closing and generation == self._generation and pc is self._pc

    def _create_peer_connection(self) -> PeerConnection:
        if self._closing or self._cipher is None or not self._cipher.has_key:
            raise SecureCallError("No active call to connect.")
        pc = self._peer_factory.create(self._ice_servers)
        self._pc = pc
        pc.on("track", self._on_track)
        pc.on("icecandidate", self._on_local_candidate)
        pc.on("connectionstatechange", self._on_connection_state_change)

        stream = self._local_stream
        if stream is not None:
            for track in stream.get_tracks():
                sender = pc.add_track(track, stream)
                self._attach(sender.create_encoded_streams(), Direction.ENCRYPT, f"send:{track.kind}")
        return pc

    def _attach(self, streams: EncodedStreams, direction: Direction, label: str) -> None:
        # Never attach a transform that would pass frames through unencrypted.
        if self._closing or self._cipher is None or not self._cipher.has_key:
            raise SecureCallError("No key material for this call.")
        transformer = FrameTransformer(self._cipher, direction, label=label)
        task = asyncio.create_task(transformer.pump(streams.readable, streams.writable))
        task.add_done_callback(_log_pump_failure)
        self._transformers.append(transformer)
        self._pumps.append(task)

    async def _on_track(self, event: TrackEvent) -> None:
        if self._pc is None or self._cipher is None or self._closing:
            return
        LOGGER.info("Received remote %s track", event.track.kind)
        self._attach(event.receiver.create_encoded_streams(), Direction.DECRYPT, f"recv:{event.track.kind}")
        if self._remote_sink is not None and event.streams:
            self._remote_sink.attach(event.streams[0])

    async def _on_local_candidate(self, candidate: Any) -> None:
        if candidate is None or self._room is None or self._closing:
            return
        await self._signaling.emit("ice-candidate", {"room": self._room, "candidate": candidate})

    async def _on_connection_state_change(self) -> None:
        pc = self._pc
        if pc is None or self._closing:
            return
        LOGGER.info("Connection state: %s", pc.connection_state)
        if pc.connection_state in TERMINAL_CONNECTION_STATES:
            self._report(TransportFailedError())
            await self._teardown()

    # ------------------------------------------------------------------
    # Teardown

    async def _teardown(self) -> None:
        if self._closing:
            return
        self._closing = True
        self._generation += 1
        try:
            pumps, self._pumps = self._pumps, []
            for task in pumps:
                task.cancel()
            if pumps:
                await asyncio.gather(*pumps, return_exceptions=True)
            self._transformers = []

            cipher, self._cipher = self._cipher, None
            if cipher is not None:
                if cipher.frames_dropped:
                    LOGGER.info("Call ended with %d undecryptable frames dropped", cipher.frames_dropped)
                cipher.clear()

            pc, self._pc = self._pc, None
            if pc is not None:
                await pc.close()

            stream, self._local_stream = self._local_stream, None
            if stream is not None:
                _stop_stream(stream)

            if self._remote_sink is not None:
                self._remote_sink.clear()
            if self._local_sink is not None:
                self._local_sink.clear()

            room, self._room = self._room, None
            if room is not None:
                try:
                    await self._signaling.emit("leave-room", {"room": room})
                except Exception:
                    LOGGER.exception("Could not notify the relay about leaving room")

            self.occupancy = 0
            self._set_state(CallState.IDLE)
        finally:
            self._closing = False

    # ------------------------------------------------------------------

    def _set_tracks_enabled(self, kind: str, enabled: bool) -> bool:
        stream = self._local_stream
        if stream is None:
            return False
        changed = False
        for track in stream.get_tracks():
            if track.kind == kind:
                track.enabled = enabled
                changed = True
        return changed

    def _set_state(self, state: CallState) -> None:
        if state is self.state:
            return
        LOGGER.info("Call state %s -> %s", self.state.value, state.value)
        self.state = state
        if self._on_state_change is not None:
            self._on_state_change(state)

    def _report(self, error: SecureCallError) -> None:
        LOGGER.warning("Call error: %s", error.detail)
        if self._on_error is not None:
            self._on_error(error)


def _stop_stream(stream: MediaStream) -> None:
    for track in stream.get_tracks():
        track.stop()


def _log_pump_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        LOGGER.error("Frame pump failed", exc_info=exc)
