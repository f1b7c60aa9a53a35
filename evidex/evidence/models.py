# evidex/evidence/models.py
"""Pydantic models for evidence bundles and their diagnostics.

A bundle is the complete, auditable output of one run.  Everything in it is
JSON-serializable with camelCase keys, and absent optional fields are
omitted (not ``null``) so canonical hashes are stable across writers.
"""

from __future__ import annotations

from typing import Any, ClassVar, Literal

from pydantic import Field

from ..core.types import Extraction, NormalizationLedger, Program, WireModel
from ..engine.executor import RunCompleteness
from ..engine.retry import RetryPolicy
from ..providers.base import ProviderRunRecord
from ..recovery.pipeline import JsonPipelineLog
from ..recovery.repair import RepairBudgetRecord

ShardFailureKind = Literal[
    "provider_error",
    "json_pipeline_failure",
    "payload_shape_failure",
    "quote_invariant_failure",
    "budget_exhausted",
    "unknown_failure",
]

EmptyResultKind = Literal["non_empty", "empty_by_evidence", "empty_by_failure"]
MultiPassStage = Literal["draft", "validate", "repair", "finalize"]


# ---------------------------------------------------------------------------
# Provenance and plan
# ---------------------------------------------------------------------------


class EvidenceRuntime(WireModel):
    name: str = "python"
    version: str


class EvidenceProvenance(WireModel):
    document_id: str
    text_hash: str
    runtime: EvidenceRuntime
    created_at: str
    program_hash: str


class ShardPlan(WireModel):
    chunk_size: int
    overlap: int
    shard_count: int


# ---------------------------------------------------------------------------
# Per-shard outcomes
# ---------------------------------------------------------------------------


class ShardFailure(WireModel):
    shard_id: str
    kind: ShardFailureKind
    message: str
    retryable: bool = False
    error_name: str


class ShardOutcome(WireModel):
    """Success carries ``provider_run_record``; failure carries ``failure``."""

    omit_when_none: ClassVar[tuple[str, ...]] = (
        "provider_run_record",
        "json_pipeline_log",
        "failure",
    )

    shard_id: str
    start: int
    end: int
    status: Literal["success", "failure"]
    from_checkpoint: bool = False
    attempts: int = 0
    extractions: list[Extraction] = Field(default_factory=list)
    provider_run_record: ProviderRunRecord | None = None
    json_pipeline_log: JsonPipelineLog | None = None
    failure: ShardFailure | None = None


# ---------------------------------------------------------------------------
# Run-level logs
# ---------------------------------------------------------------------------


class ShardPromptHash(WireModel):
    shard_id: str
    prompt_hash: str


class PromptLog(WireModel):
    program_hash: str
    shard_prompt_hashes: list[ShardPromptHash] = Field(default_factory=list)


class TimeBudgetLog(WireModel):
    time_budget_ms: int | None = None
    deadline_reached: bool = False
    started_at_ms: int
    deadline_at_ms: int | None = None


class RepairBudgetLog(WireModel):
    max_candidate_chars: int | None = None
    max_repair_chars: int | None = None
    candidate_chars_truncated_count: int = 0
    repair_chars_truncated_count: int = 0


class BudgetLog(WireModel):
    time: TimeBudgetLog
    retry: RetryPolicy
    repair: RepairBudgetLog = Field(default_factory=RepairBudgetLog)


class MultiPassStageLog(WireModel):
    pass_: int = Field(alias="pass")
    stage: MultiPassStage
    status: Literal["ok", "error"]
    failure_kind: ShardFailureKind | None = None
    message: str | None = None


class MultiPassShardLog(WireModel):
    shard_id: str
    max_passes: int
    final_pass: int
    stages: list[MultiPassStageLog] = Field(default_factory=list)


class MultiPassLog(WireModel):
    mode: Literal["draft_validate_repair_finalize"] = "draft_validate_repair_finalize"
    max_passes: int
    shards: list[MultiPassShardLog] = Field(default_factory=list)


class RepairLogEntry(WireModel):
    shard_id: str
    pass_: int = Field(alias="pass")
    parse_ok: bool
    changed: bool
    applied_steps: list[str] = Field(default_factory=list)
    budget: RepairBudgetRecord = Field(default_factory=RepairBudgetRecord)


class RepairLogDiagnostics(WireModel):
    entries: list[RepairLogEntry] = Field(default_factory=list)


class RunDiagnostics(WireModel):
    empty_result_kind: EmptyResultKind
    shard_outcomes: list[ShardOutcome] = Field(default_factory=list)
    failures: list[ShardFailure] = Field(default_factory=list)
    checkpoint_hits: int = 0
    prompt_log: PromptLog
    budget_log: BudgetLog
    multi_pass_log: MultiPassLog
    run_completeness: RunCompleteness
    repair_log: RepairLogDiagnostics = Field(default_factory=RepairLogDiagnostics)


# ---------------------------------------------------------------------------
# Bundle
# ---------------------------------------------------------------------------


class EvidenceAttestation(WireModel):
    omit_when_none: ClassVar[tuple[str, ...]] = ("key_id",)

    version: str
    canonicalization: str
    algorithm: str
    key_id: str | None = None
    payload_hash: str
    signature: str
    signed_at: str


class EvidenceBundle(WireModel):
    omit_when_none: ClassVar[tuple[str, ...]] = ("attestation",)

    bundle_version: Literal["1"] = "1"
    run_id: str
    program: Program
    extractions: list[Extraction] = Field(default_factory=list)
    provenance: EvidenceProvenance
    normalization_ledger: NormalizationLedger
    shard_plan: ShardPlan
    diagnostics: RunDiagnostics
    attestation: EvidenceAttestation | None = None

    @classmethod
    def from_json_dict(cls, data: dict[str, Any]) -> EvidenceBundle:
        return cls.model_validate(data)
