from __future__ import annotations

import os

import pytest

from e2ee.frame_cipher import IV_LENGTH, FrameCipher, build_iv
from e2ee.keys import derive_key

KEY = derive_key("1111111111")


def test_roundtrip_recovers_payload() -> None:
    cipher = FrameCipher(KEY)
    for payload in [b"", b"a", os.urandom(1200)]:
        sealed = cipher.encrypt(payload)
        assert sealed != payload
        assert cipher.decrypt(sealed) == payload


def test_encrypted_frame_layout_is_iv_then_ciphertext() -> None:
    cipher = FrameCipher(KEY)
    payload = b"frame"

    sealed = cipher.encrypt(payload)

    assert sealed[:IV_LENGTH] == build_iv(0)
    # AES-GCM appends a 16-byte tag.
    assert len(sealed) == IV_LENGTH + len(payload) + 16


def test_nonces_are_unique_within_one_engine() -> None:
    cipher = FrameCipher(KEY)
    prefixes = {cipher.encrypt(b"x")[:IV_LENGTH] for _ in range(500)}

    assert len(prefixes) == 500
    assert cipher.frames_sent == 500


def test_build_iv_writes_counter_as_two_big_endian_halves() -> None:
    assert build_iv(1) == bytes(7) + b"\x01" + bytes(4)
    assert build_iv(0x0102030405060708) == bytes.fromhex("0102030405060708") + bytes(4)


def test_build_iv_rejects_exhausted_counter() -> None:
    with pytest.raises(ValueError):
        build_iv(1 << 64)


@pytest.mark.parametrize("position", [IV_LENGTH, IV_LENGTH + 3, -1])
def test_tampered_ciphertext_is_dropped(position: int) -> None:
    cipher = FrameCipher(KEY)
    sealed = bytearray(cipher.encrypt(b"sensitive media"))
    sealed[position] ^= 0x01

    assert cipher.decrypt(bytes(sealed)) == b""
    assert cipher.frames_dropped == 1


def test_wrong_key_drops_frame_and_next_frame_still_decrypts() -> None:
    sender = FrameCipher(KEY)
    stranger = FrameCipher(derive_key("9999999999"))
    receiver = FrameCipher(KEY)

    assert receiver.decrypt(stranger.encrypt(b"intruder")) == b""
    assert receiver.decrypt(sender.encrypt(b"hello")) == b"hello"
    assert receiver.frames_dropped == 1


def test_passthrough_before_key_is_set() -> None:
    cipher = FrameCipher()
    assert cipher.has_key is False
    assert cipher.encrypt(b"plain") == b"plain"
    assert cipher.decrypt(b"0123456789abcdef") == b"0123456789abcdef"


def test_short_input_is_returned_unchanged() -> None:
    cipher = FrameCipher(KEY)
    assert cipher.decrypt(b"short") == b"short"
    assert cipher.frames_dropped == 0


def test_try_decrypt_distinguishes_drop_from_empty_plaintext() -> None:
    cipher = FrameCipher(KEY)
    assert cipher.try_decrypt(cipher.encrypt(b"")) == b""
    assert cipher.try_decrypt(bytes(IV_LENGTH + 16)) is None


def test_clear_forgets_key() -> None:
    cipher = FrameCipher(KEY)
    cipher.clear()

    assert cipher.has_key is False
    assert cipher.encrypt(b"frame") == b"frame"
