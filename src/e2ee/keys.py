"""PIN handling and key derivation."""

from __future__ import annotations

import asyncio
import secrets
from typing import Final

from cryptography.hazmat.primitives.hashes import SHA256
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

SECRET_LENGTH: Final[int] = 10

# Shared by every party so that the same PIN always yields the same key.
KDF_SALT: Final[bytes] = b"SecureVideoCall2025"
KDF_ITERATIONS: Final[int] = 100_000
KEY_LENGTH: Final[int] = 32


def is_valid_secret(secret: object) -> bool:
    """Return True for exactly ``SECRET_LENGTH`` ASCII digits."""

    if not isinstance(secret, str) or len(secret) != SECRET_LENGTH:
        return False
    return secret.isascii() and secret.isdigit()


def generate_secret() -> str:
    """Return a fresh random PIN to share out-of-band."""

    return "".join(secrets.choice("0123456789") for _ in range(SECRET_LENGTH))


def derive_key(secret: str) -> bytes:
    """Derive the 256-bit AES-GCM key for ``secret`` (PBKDF2-HMAC-SHA256).

    Deterministic: two independent derivations from the same secret are
    bit-for-bit identical.
    """

    kdf = PBKDF2HMAC(
        algorithm=SHA256(),
        length=KEY_LENGTH,
        salt=KDF_SALT,
        iterations=KDF_ITERATIONS,
    )
    return kdf.derive(secret.encode("utf-8"))


async def derive_key_async(secret: str) -> bytes:
    return await asyncio.to_thread(derive_key, secret)
