"""Domain-specific exceptions for call setup and teardown.

These exceptions are safe to import from UI layers without pulling in the
media transport.
"""

from __future__ import annotations


class SecureCallError(Exception):
    default_detail: str = "Call error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.default_detail)
        self.detail = detail or self.default_detail


class InvalidSecretError(SecureCallError):
    default_detail = "Please enter a valid 10-digit PIN."


class RoomFullError(SecureCallError):
    default_detail = "Room is full. Only 2 users allowed."


class MediaCaptureError(SecureCallError):
    default_detail = "Could not access camera/microphone. Please grant permissions."


class TransportFailedError(SecureCallError):
    default_detail = "Connection to the peer was lost."
