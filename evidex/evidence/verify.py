"""Verification of evidence-bundle attestations."""

from __future__ import annotations

import hmac
from collections.abc import Mapping
from typing import Any, ClassVar, Literal

from ..core.hashing import sha256_hex
from ..core.types import WireModel
from .attest import sign_payload
from .canonical import (
    ATTESTATION_ALGORITHM,
    ATTESTATION_CANONICALIZATION,
    ATTESTATION_VERSION,
    BundleLike,
    canonicalize_evidence_bundle,
    load_hmac_key,
)
from .models import EvidenceBundle

VerificationFailureReason = Literal[
    "missing_attestation",
    "unsupported_attestation_version",
    "unsupported_canonicalization",
    "unsupported_algorithm",
    "payload_hash_mismatch",
    "invalid_signature",
]


class VerificationResult(WireModel):
    omit_when_none: ClassVar[tuple[str, ...]] = ("reason",)

    valid: bool
    reason: VerificationFailureReason | None = None
    key_id: str | None = None
    payload_hash: str | None = None

    def __bool__(self) -> bool:
        return self.valid


def _attestation_of(bundle: BundleLike) -> dict[str, Any] | None:
    if isinstance(bundle, EvidenceBundle):
        return bundle.attestation.to_dict() if bundle.attestation is not None else None
    raw = bundle.get("attestation")
    return dict(raw) if isinstance(raw, Mapping) else None


def verify_evidence_bundle_attestation(
    bundle: BundleLike,
    key: bytes | str | Mapping[str, Any],
) -> VerificationResult:
    """Check the attestation embedded in *bundle* against *key*.

    Checks run in order (presence, version, canonicalization, algorithm,
    payload hash, signature) and the first failing one is reported.
    """
    attestation = _attestation_of(bundle)
    if attestation is None:
        return VerificationResult(valid=False, reason="missing_attestation")

    key_id = attestation.get("keyId")
    claimed_hash = attestation.get("payloadHash")

    def fail(reason: VerificationFailureReason, payload_hash: str | None) -> VerificationResult:
        return VerificationResult(valid=False, reason=reason, key_id=key_id, payload_hash=payload_hash)

    if attestation.get("version") != ATTESTATION_VERSION:
        return fail("unsupported_attestation_version", claimed_hash)
    if attestation.get("canonicalization") != ATTESTATION_CANONICALIZATION:
        return fail("unsupported_canonicalization", claimed_hash)
    if attestation.get("algorithm") != ATTESTATION_ALGORITHM:
        return fail("unsupported_algorithm", claimed_hash)

    canonical_payload = canonicalize_evidence_bundle(bundle)
    payload_hash = sha256_hex(canonical_payload)
    if payload_hash != claimed_hash:
        return fail("payload_hash_mismatch", payload_hash)

    signature = attestation.get("signature")
    if not isinstance(signature, str):
        return fail("invalid_signature", payload_hash)
    expected = sign_payload(canonical_payload, load_hmac_key(key))
    if not hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8")):
        return fail("invalid_signature", payload_hash)

    return VerificationResult(valid=True, key_id=key_id, payload_hash=payload_hash)
