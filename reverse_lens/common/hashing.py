# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Content digests used as cache fingerprints and integrity checks."""
import hashlib


def sha256_hex(data: str | bytes | bytearray | memoryview) -> str:
    """Return the SHA-256 digest of ``data`` as 64 lowercase hex characters.

    Text is encoded as UTF-8 before hashing, so ``sha256_hex("abc")`` and
    ``sha256_hex(b"abc")`` agree.

    Args:
        data (str | bytes | bytearray | memoryview): Text or raw bytes to hash.

    Returns:
        str: The hex digest.

    Raises:
        TypeError: If ``data`` is neither text nor a bytes-like object.
    """
    if isinstance(data, str):
        payload = data.encode("utf-8")
    elif isinstance(data, (bytes, bytearray, memoryview)):
        payload = bytes(data)
    else:
        raise TypeError(f"Cannot hash value of type {type(data).__name__}")
    return hashlib.sha256(payload).hexdigest()
