from __future__ import annotations

import logging
import threading
from typing import Final

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

LOGGER = logging.getLogger(__name__)

IV_LENGTH: Final[int] = 12
MAX_COUNTER: Final[int] = (1 << 64) - 1


def build_iv(counter: int) -> bytes:
    """Encode a 64-bit frame counter as a 12-byte AES-GCM nonce.

    Layout: high 32 bits (big-endian), low 32 bits (big-endian), four zero bytes.
    """

    if counter < 0 or counter > MAX_COUNTER:
        raise ValueError(f"IV counter out of range: {counter}")
    high = (counter >> 32) & 0xFFFFFFFF
    low = counter & 0xFFFFFFFF
    return high.to_bytes(4, "big") + low.to_bytes(4, "big") + bytes(IV_LENGTH - 8)


class FrameCipher:
    """AES-GCM sealing of individual encoded media frames.

    One instance serves one call. The send counter is private to the instance,
    so a nonce is never reused under the instance's key. Output frames are
    ``IV || ciphertext`` and carry everything the receiver needs.

    Decryption is fail-closed per frame: a frame that does not authenticate
    yields ``b""`` and bumps ``frames_dropped``; nothing is raised.
    """

    def __init__(self, key: bytes | None = None) -> None:
        self._aead: AESGCM | None = None
        self._counter = 0
        self._lock = threading.Lock()
        self.frames_dropped = 0
        if key is not None:
            self.set_key(key)

    @property
    def has_key(self) -> bool:
        return self._aead is not None

    @property
    def frames_sent(self) -> int:
        return self._counter

    def set_key(self, key: bytes) -> None:
        self._aead = AESGCM(key)

    def clear(self) -> None:
        """Forget the key. The instance passes frames through afterwards."""

        self._aead = None

    def _next_iv(self) -> bytes:
        with self._lock:
            iv = build_iv(self._counter)
            self._counter += 1
        return iv

    def encrypt(self, frame: bytes) -> bytes:
        aead = self._aead
        if aead is None:
            return frame

        iv = self._next_iv()
        return iv + aead.encrypt(iv, bytes(frame), None)

    def decrypt(self, frame: bytes) -> bytes:
        opened = self.try_decrypt(frame)
        return b"" if opened is None else opened

    def try_decrypt(self, frame: bytes) -> bytes | None:
        """Like ``decrypt`` but returns None, not ``b""``, for a dropped frame."""

        aead = self._aead
        if aead is None or len(frame) < IV_LENGTH:
            return frame

        data = bytes(frame)
        iv, ciphertext = data[:IV_LENGTH], data[IV_LENGTH:]
        try:
            return aead.decrypt(iv, ciphertext, None)
        except InvalidTag:
            LOGGER.debug("Dropping frame that failed authentication (%d bytes)", len(data))
        except Exception:  # noqa: BLE001
            LOGGER.debug("Dropping undecryptable frame", exc_info=True)
        self._record_drop()
        return None

    def _record_drop(self) -> None:
        with self._lock:
            self.frames_dropped += 1
