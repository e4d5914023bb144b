"""Interfaces of the external media collaborators.

The coordinator drives any real-time media stack that can be adapted to these
protocols: a peer connection with offer/answer and ICE, per-track access to
encoded frames on both senders and receivers, local capture and playback
sinks. Event registration follows the ``on(event, handler)`` style used by
aiortc's ``RTCPeerConnection``.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from e2ee.pipeline import FrameSink


@dataclass(slots=True)
class EncodedStreams:
    """Encoded frames of one track before packetization (send) or after (receive)."""

    readable: AsyncIterator[bytes]
    writable: FrameSink


class MediaTrack(Protocol):
    kind: str
    enabled: bool

    def stop(self) -> None: ...


class MediaStream(Protocol):
    def get_tracks(self) -> Sequence[MediaTrack]: ...


class RtpSender(Protocol):
    track: MediaTrack | None

    def create_encoded_streams(self) -> EncodedStreams: ...


class RtpReceiver(Protocol):
    track: MediaTrack

    def create_encoded_streams(self) -> EncodedStreams: ...


@dataclass(slots=True)
class TrackEvent:
    track: MediaTrack
    receiver: RtpReceiver
    streams: Sequence[MediaStream] = ()


Handler = Callable[..., Awaitable[None] | None]


class PeerConnection(Protocol):
    connection_state: str

    def on(self, event: str, handler: Handler) -> None:
        """Register for ``track``, ``icecandidate`` or ``connectionstatechange``."""

    def add_track(self, track: MediaTrack, stream: MediaStream) -> RtpSender: ...

    async def create_offer(self) -> Any: ...

    async def create_answer(self) -> Any: ...

    async def set_local_description(self, description: Any) -> None: ...

    async def set_remote_description(self, description: Any) -> None: ...

    async def add_ice_candidate(self, candidate: Any) -> None: ...

    async def close(self) -> None: ...


class PeerConnectionFactory(Protocol):
    def create(self, ice_servers: Sequence[str]) -> PeerConnection: ...


class MediaDevices(Protocol):
    async def get_user_media(self, *, audio: bool = True, video: bool = True) -> MediaStream:
        """Acquire local capture. Raises on permission or device failure."""


class MediaSink(Protocol):
    def attach(self, stream: MediaStream) -> None: ...

    def clear(self) -> None: ...


class SignalingChannel(Protocol):
    async def emit(self, event: str, data: dict[str, Any]) -> None: ...
