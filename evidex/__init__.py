"""
evidex - grounded extraction with auditable evidence bundles.

Documents are cut into deterministic shards, each shard is sent to a model
provider under a prompt with an explicit trust boundary, the reply is
recovered into JSON, and every extraction is checked against the exact
document text at its span.  A run returns an :class:`EvidenceBundle`
carrying the extractions, provenance and full diagnostics, which can be
attested with HMAC and stored as JSONL.

Main Components:
    - evidex.core: hashing, canonical JSON, UTF-16 offsets, the grounding invariant
    - evidex.recovery: frame decoding, JSON candidate extraction, repair, tool calls
    - evidex.engine: sharding, prompts, retries, checkpoints, the orchestrator
    - evidex.providers: provider contract and deterministic doubles
    - evidex.evidence: bundle models, attestation, verification, JSONL
"""

__version__ = "0.1.0"

from .core import (
    DocumentInput,
    Extraction,
    Program,
    ProgramError,
    QuoteInvariantError,
    QuoteInvariantViolation,
    Span,
    assert_quote_invariant,
    canonical_json,
    normalize_program,
    sha256_hex,
)
from .recovery import parse_json_with_repair_pipeline
from .providers import FakeProvider, Provider, ProviderError, ScriptedProvider
from .engine import (
    FileCheckpointStore,
    InMemoryCheckpointStore,
    RetryPolicy,
    chunk_document,
    execute_shards_with_checkpoint,
    map_shard_span_to_document,
)
from .evidence import (
    EvidenceBundle,
    attest_evidence_bundle,
    decode_jsonl_to_evidence_bundles,
    encode_evidence_bundles_to_jsonl,
    verify_evidence_bundle_attestation,
)
from .engine.run import run_extraction_with_provider, run_with_evidence

__all__ = [
    "DocumentInput",
    "EvidenceBundle",
    "Extraction",
    "FakeProvider",
    "FileCheckpointStore",
    "InMemoryCheckpointStore",
    "Program",
    "ProgramError",
    "Provider",
    "ProviderError",
    "QuoteInvariantError",
    "QuoteInvariantViolation",
    "RetryPolicy",
    "ScriptedProvider",
    "Span",
    "assert_quote_invariant",
    "attest_evidence_bundle",
    "canonical_json",
    "chunk_document",
    "decode_jsonl_to_evidence_bundles",
    "encode_evidence_bundles_to_jsonl",
    "execute_shards_with_checkpoint",
    "map_shard_span_to_document",
    "normalize_program",
    "parse_json_with_repair_pipeline",
    "run_extraction_with_provider",
    "run_with_evidence",
    "sha256_hex",
    "verify_evidence_bundle_attestation",
]
