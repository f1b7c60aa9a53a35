"""Canonical payload of an evidence bundle, the thing that gets hashed and signed."""

from __future__ import annotations

import base64
from collections.abc import Mapping
from typing import Any, Union

from ..core.canonical import canonical_json
from ..core.hashing import sha256_hex
from .models import EvidenceBundle

ATTESTATION_VERSION = "1"
ATTESTATION_CANONICALIZATION = "evidex-json-c14n-v1"
ATTESTATION_ALGORITHM = "HMAC-SHA-256"

BundleLike = Union[EvidenceBundle, Mapping[str, Any]]


def _bundle_dict(bundle: BundleLike) -> dict[str, Any]:
    if isinstance(bundle, EvidenceBundle):
        return bundle.to_dict()
    if isinstance(bundle, Mapping):
        return dict(bundle)
    raise TypeError(f"Expected an evidence bundle, got {type(bundle).__name__}")


def strip_attestation(bundle: BundleLike) -> dict[str, Any]:
    """Wire dict of *bundle* without its ``attestation`` key."""
    data = _bundle_dict(bundle)
    data.pop("attestation", None)
    return data


def canonicalize_evidence_bundle(bundle: BundleLike) -> str:
    return canonical_json(strip_attestation(bundle))


def hash_evidence_bundle(bundle: BundleLike) -> str:
    return sha256_hex(canonicalize_evidence_bundle(bundle))


def encode_base64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def decode_base64url(text: str) -> bytes:
    padded = text + "=" * (-len(text) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


def load_hmac_key(key: bytes | str | Mapping[str, Any]) -> bytes:
    """Raw HMAC key bytes from bytes, a UTF-8 string, or an ``oct`` JWK."""
    if isinstance(key, bytes):
        secret = key
    elif isinstance(key, str):
        secret = key.encode("utf-8")
    elif isinstance(key, Mapping):
        if key.get("kty") != "oct":
            raise ValueError("Attestation key must be a symmetric JWK (kty=oct).")
        encoded = key.get("k")
        if not isinstance(encoded, str) or not encoded:
            raise ValueError("Attestation JWK must carry a non-empty 'k' value.")
        secret = decode_base64url(encoded)
    else:
        raise ValueError(f"Unsupported attestation key type: {type(key).__name__}")

    if not secret:
        raise ValueError("Attestation key must not be empty.")
    return secret
