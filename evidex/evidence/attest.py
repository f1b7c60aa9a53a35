"""HMAC-SHA-256 attestation of evidence bundles."""

from __future__ import annotations

import hashlib
import hmac
import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from ..core.hashing import sha256_hex
from .canonical import (
    ATTESTATION_ALGORITHM,
    ATTESTATION_CANONICALIZATION,
    ATTESTATION_VERSION,
    BundleLike,
    canonicalize_evidence_bundle,
    encode_base64url,
    load_hmac_key,
)
from .models import EvidenceAttestation, EvidenceBundle

logger = logging.getLogger(__name__)


def sign_payload(canonical_payload: str, key: bytes) -> str:
    digest = hmac.new(key, canonical_payload.encode("utf-8", "surrogatepass"), hashlib.sha256).digest()
    return encode_base64url(digest)


def attest_evidence_bundle(
    bundle: BundleLike,
    key: bytes | str | Mapping[str, Any],
    *,
    key_id: str | None = None,
    signed_at: str | None = None,
) -> EvidenceBundle:
    """Return a copy of *bundle* with a fresh attestation attached.

    Any existing attestation is dropped first, so re-signing never signs an
    old signature.  The input bundle is not modified.
    """
    secret = load_hmac_key(key)
    model = bundle if isinstance(bundle, EvidenceBundle) else EvidenceBundle.model_validate(dict(bundle))
    unsigned = model.model_copy(update={"attestation": None})
    canonical_payload = canonicalize_evidence_bundle(unsigned)
    payload_hash = sha256_hex(canonical_payload)

    attestation = EvidenceAttestation(
        version=ATTESTATION_VERSION,
        canonicalization=ATTESTATION_CANONICALIZATION,
        algorithm=ATTESTATION_ALGORITHM,
        key_id=key_id,
        payload_hash=payload_hash,
        signature=sign_payload(canonical_payload, secret),
        signed_at=signed_at or datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    )
    logger.info("Attested bundle payload %s (key id %s)", payload_hash[:12], key_id or "-")
    return unsigned.model_copy(update={"attestation": attestation})
