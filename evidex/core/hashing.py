"""SHA-256 content hashing used for shard ids, prompt and request hashes."""

from __future__ import annotations

import hashlib


def _to_bytes(data: str | bytes) -> bytes:
    if isinstance(data, bytes):
        return data
    # Shard windows may split a surrogate pair; keep those hashable.
    return data.encode("utf-8", "surrogatepass")


def sha256_hex(data: str | bytes) -> str:
    """Return the lowercase hex SHA-256 digest of *data*.

    Strings are encoded as UTF-8 before hashing.
    """
    return hashlib.sha256(_to_bytes(data)).hexdigest()
