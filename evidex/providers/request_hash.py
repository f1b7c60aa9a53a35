"""Stable request hashing for provenance and deterministic replay."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from ..core.canonical import canonical_json
from ..core.hashing import sha256_hex
from .base import ProviderRequest


def hash_provider_request(request: ProviderRequest | Mapping[str, Any]) -> str:
    """SHA-256 of the canonical JSON of *request* (wire keys, absent fields omitted)."""
    if isinstance(request, ProviderRequest):
        return sha256_hex(canonical_json(request.to_dict()))
    return sha256_hex(canonical_json(dict(request)))
