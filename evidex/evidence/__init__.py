"""Evidence bundles: models, canonicalization, attestation and JSONL I/O."""

from .attest import attest_evidence_bundle
from .canonical import (
    ATTESTATION_ALGORITHM,
    ATTESTATION_CANONICALIZATION,
    ATTESTATION_VERSION,
    canonicalize_evidence_bundle,
    hash_evidence_bundle,
    strip_attestation,
)
from .jsonl import (
    JsonlDecodeError,
    decode_jsonl_to_evidence_bundles,
    encode_evidence_bundles_to_jsonl,
    read_jsonl,
    write_jsonl,
)
from .models import (
    BudgetLog,
    EvidenceAttestation,
    EvidenceBundle,
    EvidenceProvenance,
    EvidenceRuntime,
    MultiPassLog,
    MultiPassShardLog,
    MultiPassStageLog,
    PromptLog,
    RepairLogDiagnostics,
    RepairLogEntry,
    RunDiagnostics,
    ShardFailure,
    ShardOutcome,
    ShardPlan,
)
from .verify import VerificationResult, verify_evidence_bundle_attestation

__all__ = [
    "ATTESTATION_ALGORITHM",
    "ATTESTATION_CANONICALIZATION",
    "ATTESTATION_VERSION",
    "BudgetLog",
    "EvidenceAttestation",
    "EvidenceBundle",
    "EvidenceProvenance",
    "EvidenceRuntime",
    "JsonlDecodeError",
    "MultiPassLog",
    "MultiPassShardLog",
    "MultiPassStageLog",
    "PromptLog",
    "RepairLogDiagnostics",
    "RepairLogEntry",
    "RunDiagnostics",
    "ShardFailure",
    "ShardOutcome",
    "ShardPlan",
    "VerificationResult",
    "attest_evidence_bundle",
    "canonicalize_evidence_bundle",
    "decode_jsonl_to_evidence_bundles",
    "encode_evidence_bundles_to_jsonl",
    "hash_evidence_bundle",
    "read_jsonl",
    "strip_attestation",
    "verify_evidence_bundle_attestation",
    "write_jsonl",
]
