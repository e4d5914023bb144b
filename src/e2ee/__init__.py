"""Frame-level end-to-end encryption for call media.

Both parties derive the same AES-GCM key from the shared PIN and every encoded
media frame is sealed before it reaches the transport. The relay and the
transport only ever carry ``IV || ciphertext``.
"""
