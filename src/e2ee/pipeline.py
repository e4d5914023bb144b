from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterable, Awaitable, Callable
from dataclasses import dataclass
from enum import Enum

from e2ee.frame_cipher import FrameCipher

LOGGER = logging.getLogger(__name__)

FrameSink = Callable[[bytes], Awaitable[None]]


class Direction(str, Enum):
    ENCRYPT = "encrypt"
    DECRYPT = "decrypt"


@dataclass(slots=True)
class TransformStats:
    frames_in: int = 0
    frames_out: int = 0
    frames_dropped: int = 0


class FrameTransformer:
    """Runs one track's encoded frames through a FrameCipher.

    Frames are handled strictly one after another, so per-track order is
    preserved even though each cipher call runs on a worker thread. Separate
    tracks get separate transformers and progress independently.
    """

    def __init__(self, cipher: FrameCipher, direction: Direction, *, label: str = "") -> None:
        self._cipher = cipher
        self.direction = direction
        self.label = label
        self.stats = TransformStats()
        self._lock = asyncio.Lock()

    async def transform(self, frame: bytes) -> bytes | None:
        """Return the transformed frame, or None when it was dropped."""

        async with self._lock:
            self.stats.frames_in += 1
            if self.direction is Direction.ENCRYPT:
                out = await asyncio.to_thread(self._cipher.encrypt, frame)
            else:
                out = await asyncio.to_thread(self._cipher.try_decrypt, frame)

            if out is None:
                self.stats.frames_dropped += 1
            else:
                self.stats.frames_out += 1
            return out

    async def pump(self, readable: AsyncIterable[bytes], write: FrameSink) -> None:
        """Move every frame from ``readable`` to ``write`` until the source ends."""

        LOGGER.debug("Frame pump started (%s %s)", self.direction.value, self.label)
        try:
            async for frame in readable:
                out = await self.transform(frame)
                if out is None:
                    continue
                await write(out)
        finally:
            LOGGER.debug(
                "Frame pump stopped (%s %s): in=%d out=%d dropped=%d",
                self.direction.value,
                self.label,
                self.stats.frames_in,
                self.stats.frames_out,
                self.stats.frames_dropped,
            )
