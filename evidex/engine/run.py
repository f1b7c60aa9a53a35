# evidex/engine/run.py
"""
Evidence orchestrator: shard, prompt, call, recover JSON, ground, assemble.

Each shard runs a small state machine (draft -> validate -> repair ->
finalize) capped at ``multi_pass_max_passes`` passes.  A shard-level failure
never aborts the run unless ``all_or_nothing`` is set; it is recorded in the
bundle diagnostics instead.
"""

from __future__ import annotations

import json
import logging
import math
import platform
import random as _random
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Literal, Optional, Union

from pydantic import Field

from ..core.hashing import sha256_hex
from ..core.invariants import (
    QuoteInvariantError,
    QuoteInvariantViolation,
    assert_quote_invariant,
)
from ..core.normalize import normalize_text
from ..core.offsets import OFFSET_MODE, utf16_length
from ..core.program import normalize_program
from ..core.types import DocumentInput, Extraction, Program, Span, WireModel
from ..evidence.models import (
    BudgetLog,
    EvidenceBundle,
    EvidenceProvenance,
    EvidenceRuntime,
    MultiPassLog,
    MultiPassShardLog,
    MultiPassStageLog,
    PromptLog,
    RepairBudgetLog,
    RepairLogDiagnostics,
    RepairLogEntry,
    RunDiagnostics,
    ShardFailure,
    ShardFailureKind,
    ShardOutcome,
    ShardPlan,
    ShardPromptHash,
    TimeBudgetLog,
)
from ..providers.base import Provider, ProviderRequest, ProviderResponse, ProviderRunRecord
from ..providers.errors import ProviderError, is_transient_provider_error
from ..recovery.pipeline import (
    JsonPipelineFailure,
    JsonPipelineLog,
    JsonPipelineResult,
    parse_json_with_repair_pipeline,
)
from ..recovery.repair import RepairBudgets
from ..recovery.tool_calls import assemble_streaming_tool_calls
from ..utils.logging import log_llm_response, log_prompt, log_run_summary, log_shard_outcome
from .checkpoint import CheckpointStore, InMemoryCheckpointStore
from .chunk import DocumentShard, chunk_document
from .executor import (
    ShardExecution,
    classify_run_completeness,
    execute_shards_with_checkpoint,
)
from .prompts import (
    DEFAULT_MAX_SCHEMA_CHARS,
    compile_prompt,
    compile_repair_prompt,
    hash_prompt_text,
)
from .retry import RetryPolicy, normalize_retry_policy
from .spans import SpanMappingError, map_shard_span_to_document

logger = logging.getLogger(__name__)

StructuredMode = Literal["auto", "always", "never"]

# schema keywords that constrain output beyond a bare top-level "type"
CONSTRAINING_SCHEMA_KEYS = frozenset(
    {"properties", "items", "enum", "const", "required", "anyOf", "additionalProperties"}
)

PAYLOAD_SHAPE_MESSAGE = "Provider response must be an array or object with `extractions` array."
OFFSET_MISMATCH_MESSAGE = "Extraction offset fields must match between top-level and span."
DEADLINE_BEFORE_SHARD = "Run time budget exhausted before shard execution."
DEADLINE_BEFORE_ATTEMPT = "Run time budget exhausted before provider attempt."

REPAIRABLE_FAILURE_KINDS = frozenset(
    {"json_pipeline_failure", "payload_shape_failure", "quote_invariant_failure"}
)


# ============================================================================
# Errors
# ============================================================================

class PayloadShapeFailure(Exception):
    """Parsed JSON that is not an extraction payload."""


class BudgetExhaustedError(Exception):
    """The run deadline passed before a shard (or attempt) could start."""


def _collect_budget_failures(error: BaseException) -> bool:
    # deadline failures are recorded even when other failures abort the run
    return isinstance(error, BudgetExhaustedError)


class ShardValidationFailure(Exception):
    """Every pass of a shard failed validation; carries the logs for diagnostics."""

    transient = False

    def __init__(
        self,
        cause: Exception,
        multi_pass_shard_log: MultiPassShardLog,
        json_pipeline_log: JsonPipelineLog | None,
        repair_entries: list[RepairLogEntry],
    ) -> None:
        super().__init__(str(cause))
        self.cause = cause
        self.multi_pass_shard_log = multi_pass_shard_log
        self.json_pipeline_log = json_pipeline_log
        self.repair_entries = repair_entries


# ============================================================================
# Checkpointed shard value
# ============================================================================

class ShardRunValue(WireModel):
    """What a successful shard stores in the checkpoint store (as a plain dict)."""

    extractions: list[Extraction] = Field(default_factory=list)
    json_pipeline_log: JsonPipelineLog
    provider_run_record: ProviderRunRecord
    multi_pass_shard_log: MultiPassShardLog
    repair_entries: list[RepairLogEntry] = Field(default_factory=list)


# ============================================================================
# Requests
# ============================================================================

def uses_structured_generation(schema: Mapping[str, Any] | None, mode: StructuredMode = "auto") -> bool:
    """Decide between ``generate_structured`` and ``generate``.

    ``auto`` picks structured generation when the schema has any keyword in
    :data:`CONSTRAINING_SCHEMA_KEYS`.
    """
    if mode == "always":
        return True
    if mode == "never" or not schema:
        return False
    return any(key in schema for key in CONSTRAINING_SCHEMA_KEYS)


def build_provider_request(
    program: Program,
    shard: DocumentShard,
    model: str,
    *,
    max_schema_chars: int = DEFAULT_MAX_SCHEMA_CHARS,
) -> ProviderRequest:
    return ProviderRequest(
        model=model,
        prompt=compile_prompt(program, shard, max_schema_chars=max_schema_chars),
        schema=program.schema_ or None,
    )


def build_repair_provider_request(
    program: Program,
    shard: DocumentShard,
    model: str,
    *,
    previous_response_text: str,
    failure_kind: str,
    failure_message: str,
    prior_pass: int,
    max_schema_chars: int = DEFAULT_MAX_SCHEMA_CHARS,
) -> ProviderRequest:
    return ProviderRequest(
        model=model,
        prompt=compile_repair_prompt(
            program,
            shard,
            previous_response_text=previous_response_text,
            failure_kind=failure_kind,
            failure_message=failure_message,
            prior_pass=prior_pass,
            max_schema_chars=max_schema_chars,
        ),
        schema=program.schema_ or None,
    )


# ============================================================================
# Payload handling
# ============================================================================

def is_extraction_payload(value: Any) -> bool:
    if isinstance(value, list):
        return True
    return isinstance(value, dict) and isinstance(value.get("extractions"), list)


def _is_envelope(value: Any) -> bool:
    return isinstance(value, dict) and "extractions" not in value and (
        isinstance(value.get("choices"), list) or isinstance(value.get("candidates"), list)
    )


def _accept_candidate(value: Any) -> bool:
    return is_extraction_payload(value) or _is_envelope(value)


def unwrap_provider_envelope(value: Any) -> str | None:
    """Inner text of an OpenAI- or Gemini-shaped response body, if *value* is one.

    Tool-call / function-call arguments win over plain message text.
    """
    if not _is_envelope(value):
        return None

    choices = value.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        message = choices[0].get("message")
        if isinstance(message, dict):
            for call in message.get("tool_calls") or []:
                function = call.get("function") if isinstance(call, dict) else None
                arguments = function.get("arguments") if isinstance(function, dict) else None
                if isinstance(arguments, str) and arguments.strip():
                    return arguments
                if isinstance(arguments, (dict, list)):
                    return json.dumps(arguments, ensure_ascii=False)
            if isinstance(message.get("content"), str):
                return message["content"]

    candidates = value.get("candidates")
    if isinstance(candidates, list) and candidates and isinstance(candidates[0], dict):
        content = candidates[0].get("content")
        parts = content.get("parts") if isinstance(content, dict) else None
        if isinstance(parts, list):
            for part in parts:
                call = part.get("functionCall") if isinstance(part, dict) else None
                if isinstance(call, dict) and call.get("args") is not None:
                    args = call["args"]
                    if isinstance(args, str):
                        return args
                    return json.dumps(args, ensure_ascii=False)
            texts = [part["text"] for part in parts if isinstance(part, dict) and isinstance(part.get("text"), str)]
            if texts:
                return "".join(texts)
    return None


def recover_payload(text: str, budgets: RepairBudgets | None) -> JsonPipelineResult:
    """Run the JSON pipeline, preferring streamed tool-call arguments and unwrapping envelopes."""
    result = parse_json_with_repair_pipeline(text, repair=budgets, accept=_accept_candidate)

    if result.frames:
        for call in assemble_streaming_tool_calls(result.frames):
            if call.arguments.strip():
                logger.debug("Using streamed tool-call arguments from %s", call.name or "unnamed call")
                result = parse_json_with_repair_pipeline(
                    call.arguments, repair=budgets, accept=_accept_candidate
                )
                break

    if result.ok:
        inner = unwrap_provider_envelope(result.value)
        if inner is not None:
            logger.debug("Unwrapped provider envelope (%d chars)", len(inner))
            result = parse_json_with_repair_pipeline(inner, repair=budgets, accept=is_extraction_payload)
    return result


def _raw_extractions(payload: Any) -> list[Any]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get("extractions"), list):
        return payload["extractions"]
    raise PayloadShapeFailure(PAYLOAD_SHAPE_MESSAGE)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _as_offset(value: Any) -> int | float:
    # JSON has no int/float distinction: 6.0 is the integer 6
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return int(value)
    return value


def _read_offsets(raw: Mapping[str, Any]) -> tuple[str, Any, Any]:
    span = raw.get("span")
    top_level = {key: raw[key] for key in ("offsetMode", "charStart", "charEnd") if key in raw}

    if span is not None and not isinstance(span, Mapping):
        raise PayloadShapeFailure("Extraction span must be an object.")
    if span is None and not top_level:
        raise PayloadShapeFailure("Extraction must carry a span or top-level offsets.")

    if span is not None:
        for key, value in top_level.items():
            if key in span and span[key] != value:
                raise PayloadShapeFailure(OFFSET_MISMATCH_MESSAGE)
        source = {**top_level, **span}
    else:
        source = top_level

    offset_mode = source.get("offsetMode", OFFSET_MODE)
    if offset_mode != OFFSET_MODE:
        raise PayloadShapeFailure(f"Unsupported offsetMode: {offset_mode!r}")
    char_start, char_end = source.get("charStart"), source.get("charEnd")
    if not _is_number(char_start) or not _is_number(char_end):
        raise PayloadShapeFailure("Extraction offsets charStart/charEnd must be numbers.")
    return offset_mode, _as_offset(char_start), _as_offset(char_end)


def build_grounded_extraction(raw: Any, shard: DocumentShard, document_text: str) -> Extraction:
    """Validate one raw extraction, map it to document offsets and ground it.

    Raises :class:`PayloadShapeFailure` for malformed fields and
    :class:`QuoteInvariantViolation` for spans that do not ground.
    """
    if not isinstance(raw, Mapping):
        raise PayloadShapeFailure("Each extraction must be an object.")
    extraction_class = raw.get("extractionClass")
    quote = raw.get("quote")
    if not isinstance(extraction_class, str) or not extraction_class:
        raise PayloadShapeFailure("Extraction extractionClass must be a non-empty string.")
    if not isinstance(quote, str):
        raise PayloadShapeFailure("Extraction quote must be a string.")
    grounding = raw.get("grounding", "explicit")
    if grounding not in ("explicit", "inferred"):
        raise PayloadShapeFailure(f"Unsupported grounding: {grounding!r}")
    attributes = raw.get("attributes")
    if attributes is not None and not isinstance(attributes, Mapping):
        raise PayloadShapeFailure("Extraction attributes must be an object when provided.")

    offset_mode, char_start, char_end = _read_offsets(raw)

    if not isinstance(char_start, int) or not isinstance(char_end, int):
        # non-integral offsets fail the invariant as INVALID_SPAN
        assert_quote_invariant(
            document_text,
            Extraction.model_construct(
                extraction_class=extraction_class,
                quote=quote,
                span=Span.model_construct(offset_mode=offset_mode, char_start=char_start, char_end=char_end),
                attributes=None,
                grounding=grounding,
            ),
        )

    local_span = Span(offset_mode=offset_mode, char_start=char_start, char_end=char_end)
    try:
        global_span = map_shard_span_to_document(shard, local_span)
    except SpanMappingError as exc:
        raise QuoteInvariantViolation(
            QuoteInvariantError(
                code=exc.code,
                message=str(exc),
                quote=quote,
                actual_quote="",
                char_start=char_start,
                char_end=char_end,
                doc_length=utf16_length(document_text),
            )
        ) from exc

    extraction = Extraction(
        extraction_class=extraction_class,
        quote=quote,
        span=global_span,
        attributes=dict(attributes) if attributes is not None else None,
        grounding=grounding,
    )
    assert_quote_invariant(document_text, extraction)
    return extraction


def classify_validation_failure(error: BaseException) -> ShardFailureKind:
    if isinstance(error, JsonPipelineFailure):
        return "json_pipeline_failure"
    if isinstance(error, PayloadShapeFailure):
        return "payload_shape_failure"
    if isinstance(error, QuoteInvariantViolation):
        return "quote_invariant_failure"
    return "unknown_failure"


def classify_shard_failure(shard_id: str, error: BaseException) -> ShardFailure:
    cause = error.cause if isinstance(error, ShardValidationFailure) else error
    if isinstance(cause, ProviderError):
        return ShardFailure(
            shard_id=shard_id,
            kind="provider_error",
            message=str(cause),
            retryable=cause.kind == "transient",
            error_name="ProviderError",
        )
    if isinstance(cause, BudgetExhaustedError):
        return ShardFailure(
            shard_id=shard_id,
            kind="budget_exhausted",
            message=str(cause),
            error_name="BudgetExhaustedError",
        )
    kind = classify_validation_failure(cause)
    error_name = "QuoteInvariantError" if kind == "quote_invariant_failure" else type(cause).__name__
    return ShardFailure(shard_id=shard_id, kind=kind, message=str(cause), error_name=error_name)


# ============================================================================
# One shard, all passes
# ============================================================================

@dataclass
class _ShardContext:
    program: Program
    provider: Provider
    model: str
    document_text: str
    repair_budgets: Optional[RepairBudgets]
    max_passes: int
    structured: bool
    max_schema_chars: int


def _stage(pass_: int, stage: str, status: str, kind: str | None = None,
           message: str | None = None) -> MultiPassStageLog:
    return MultiPassStageLog(pass_=pass_, stage=stage, status=status, failure_kind=kind, message=message)


def _call_provider(ctx: _ShardContext, request: ProviderRequest) -> ProviderResponse:
    if ctx.structured:
        return ctx.provider.generate_structured(request)
    return ctx.provider.generate(request)


def run_shard_passes(ctx: _ShardContext, shard: DocumentShard) -> ShardRunValue:
    """Draft, then repair on a repairable failure, up to ``ctx.max_passes`` passes.

    Provider errors propagate unchanged so the executor can retry them;
    validation failures are wrapped in :class:`ShardValidationFailure`.
    """
    stages: list[MultiPassStageLog] = []
    repair_entries: list[RepairLogEntry] = []
    previous_text = ""
    last_kind: ShardFailureKind = "unknown_failure"
    last_message = "Unknown validation failure."
    last_error: Exception = RuntimeError("multi-pass execution failed")
    last_log: JsonPipelineLog | None = None
    final_pass = 0

    for pass_ in range(1, ctx.max_passes + 1):
        final_pass = pass_
        if pass_ == 1:
            request = build_provider_request(
                ctx.program, shard, ctx.model, max_schema_chars=ctx.max_schema_chars
            )
        else:
            request = build_repair_provider_request(
                ctx.program,
                shard,
                ctx.model,
                previous_response_text=previous_text,
                failure_kind=last_kind,
                failure_message=last_message,
                prior_pass=pass_ - 1,
                max_schema_chars=ctx.max_schema_chars,
            )
        log_prompt(logger, f"pass {pass_} shard {shard.shard_id[:12]}", request.prompt)

        response = _call_provider(ctx, request)
        stages.append(_stage(pass_, "draft", "ok"))
        previous_text = response.text
        log_llm_response(logger, f"pass {pass_} shard {shard.shard_id[:12]}", response.text)

        result = recover_payload(response.text, ctx.repair_budgets)
        last_log = result.log
        repair_entries.append(
            RepairLogEntry(
                shard_id=shard.shard_id,
                pass_=pass_,
                parse_ok=result.log.parse.ok,
                changed=result.log.repair.changed,
                applied_steps=result.log.repair.applied_steps(),
                budget=result.log.repair.budget,
            )
        )

        try:
            payload = result.unwrap()
            extractions = [
                build_grounded_extraction(raw, shard, ctx.document_text)
                for raw in _raw_extractions(payload)
            ]
        except (JsonPipelineFailure, PayloadShapeFailure, QuoteInvariantViolation) as exc:
            last_error = exc
            last_kind = classify_validation_failure(exc)
            last_message = str(exc)
            stages.append(_stage(pass_, "validate", "error", last_kind, last_message))
            if pass_ < ctx.max_passes and last_kind in REPAIRABLE_FAILURE_KINDS:
                logger.info("Shard %s pass %d failed (%s); scheduling repair", shard.shard_id[:12], pass_, last_kind)
                stages.append(_stage(pass_, "repair", "ok", last_kind, "Repair pass scheduled."))
                continue
            break

        stages.append(_stage(pass_, "validate", "ok"))
        stages.append(_stage(pass_, "finalize", "ok"))
        return ShardRunValue(
            extractions=extractions,
            json_pipeline_log=result.log,
            provider_run_record=response.run_record,
            multi_pass_shard_log=MultiPassShardLog(
                shard_id=shard.shard_id,
                max_passes=ctx.max_passes,
                final_pass=pass_,
                stages=stages,
            ),
            repair_entries=repair_entries,
        )

    raise ShardValidationFailure(
        last_error,
        MultiPassShardLog(
            shard_id=shard.shard_id,
            max_passes=ctx.max_passes,
            final_pass=final_pass,
            stages=stages,
        ),
        last_log,
        repair_entries,
    )


# ============================================================================
# Option normalization
# ============================================================================

def _positive_int(label: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValueError(f"{label} must be a positive integer.")
    return value


def _optional_non_negative_int(label: str, value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"{label} must be a non-negative integer.")
    return value


def _normalize_repair_budgets(budgets: RepairBudgets | Mapping[str, Any] | None) -> RepairBudgets | None:
    if budgets is None:
        return None
    if not isinstance(budgets, RepairBudgets):
        budgets = RepairBudgets.model_validate(dict(budgets))
    for label, value in (
        ("repairBudgets.maxCandidateChars", budgets.max_candidate_chars),
        ("repairBudgets.maxRepairChars", budgets.max_repair_chars),
    ):
        if value is not None and (isinstance(value, bool) or value <= 0):
            raise ValueError(f"{label} must be a positive integer.")
    if budgets.max_candidate_chars is None and budgets.max_repair_chars is None:
        return None
    return budgets


def _read_clock_ms(now_ms: Callable[[], float]) -> int:
    value = now_ms()
    if not isinstance(value, (int, float)) or not math.isfinite(value) or value < 0:
        raise ValueError("now_ms must return a non-negative finite number.")
    return math.floor(value)


def _default_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _coerce_document(document: DocumentInput | Mapping[str, Any] | str) -> DocumentInput:
    if isinstance(document, DocumentInput):
        return document
    if isinstance(document, str):
        return DocumentInput(text=document)
    return DocumentInput.model_validate(dict(document))


def dedupe_and_sort_extractions(extractions: list[Extraction]) -> list[Extraction]:
    """Collapse identical (class, quote, span) entries; order by span then class then quote."""
    seen: set[tuple[str, str, int, int]] = set()
    unique: list[Extraction] = []
    for extraction in extractions:
        identity = extraction.identity()
        if identity in seen:
            continue
        seen.add(identity)
        unique.append(extraction)
    return sorted(
        unique,
        key=lambda e: (e.span.char_start, e.span.char_end, e.extraction_class, e.quote),
    )


def determine_empty_result_kind(extractions: list[Extraction], failures: list[ShardFailure]) -> str:
    if extractions:
        return "non_empty"
    if failures:
        return "empty_by_failure"
    return "empty_by_evidence"


# ============================================================================
# Runs
# ============================================================================

@dataclass
class _RunState:
    deadline_at_ms: Optional[int]
    now_ms: Callable[[], float]
    deadline_reached: bool = False
    candidate_truncations: int = 0
    repair_truncations: int = 0
    outcomes: list[ShardOutcome] = field(default_factory=list)
    failures: list[ShardFailure] = field(default_factory=list)
    multi_pass: list[MultiPassShardLog] = field(default_factory=list)
    repair_entries: list[RepairLogEntry] = field(default_factory=list)

    def deadline_passed(self) -> bool:
        return self.deadline_at_ms is not None and _read_clock_ms(self.now_ms) >= self.deadline_at_ms

    def count_truncations(self, log: JsonPipelineLog | None) -> None:
        if log is None:
            return
        if log.repair.budget.candidate_chars_truncated:
            self.candidate_truncations += 1
        if log.repair.budget.repair_chars_truncated:
            self.repair_truncations += 1


def _failure_shard_log(shard_id: str, max_passes: int, pass_: int, kind: ShardFailureKind,
                       message: str) -> MultiPassShardLog:
    return MultiPassShardLog(
        shard_id=shard_id,
        max_passes=max_passes,
        final_pass=pass_,
        stages=[_stage(pass_, "draft", "error", kind, message)],
    )


def _record_execution(state: _RunState, shard: DocumentShard, execution: ShardExecution[Any],
                      max_passes: int) -> None:
    if execution.ok:
        value = ShardRunValue.model_validate(execution.value)
        state.count_truncations(value.json_pipeline_log)
        state.outcomes.append(
            ShardOutcome(
                shard_id=shard.shard_id,
                start=shard.start,
                end=shard.end,
                status="success",
                from_checkpoint=execution.from_checkpoint,
                attempts=execution.attempts,
                extractions=value.extractions,
                provider_run_record=value.provider_run_record,
                json_pipeline_log=value.json_pipeline_log,
            )
        )
        state.multi_pass.append(value.multi_pass_shard_log)
        state.repair_entries.extend(value.repair_entries)
        return

    error = execution.error
    assert error is not None
    failure = classify_shard_failure(shard.shard_id, error)
    attempts = execution.attempts
    pipeline_log: JsonPipelineLog | None = None

    if isinstance(error, ShardValidationFailure):
        pipeline_log = error.json_pipeline_log
        state.multi_pass.append(error.multi_pass_shard_log)
        state.repair_entries.extend(error.repair_entries)
    elif isinstance(error, BudgetExhaustedError):
        state.deadline_reached = True
        attempts = max(0, attempts - 1)
        state.multi_pass.append(
            _failure_shard_log(shard.shard_id, max_passes, attempts, "budget_exhausted", str(error))
        )
    else:
        state.multi_pass.append(
            _failure_shard_log(shard.shard_id, max_passes, 1, failure.kind, failure.message)
        )

    state.count_truncations(pipeline_log)
    state.failures.append(failure)
    state.outcomes.append(
        ShardOutcome(
            shard_id=shard.shard_id,
            start=shard.start,
            end=shard.end,
            status="failure",
            from_checkpoint=False,
            attempts=attempts,
            extractions=[],
            json_pipeline_log=pipeline_log,
            failure=failure,
        )
    )


def run_with_evidence(
    run_id: str,
    program: Union[Program, Mapping[str, Any]],
    document: Union[DocumentInput, Mapping[str, Any], str],
    provider: Provider,
    model: str,
    chunk_size: int,
    overlap: int,
    *,
    checkpoint_store: Optional[CheckpointStore] = None,
    retry_policy: Union[RetryPolicy, Mapping[str, Any], None] = None,
    trim_trailing_whitespace_per_line: bool = False,
    now: Optional[Callable[[], str]] = None,
    all_or_nothing: bool = False,
    random: Optional[Callable[[], float]] = None,
    sleep: Optional[Callable[[float], None]] = None,
    now_ms: Optional[Callable[[], float]] = None,
    time_budget_ms: Optional[int] = None,
    repair_budgets: Union[RepairBudgets, Mapping[str, Any], None] = None,
    multi_pass_max_passes: int = 2,
    structured_mode: StructuredMode = "auto",
    max_schema_chars: int = DEFAULT_MAX_SCHEMA_CHARS,
    max_workers: int = 1,
) -> EvidenceBundle:
    """Run the extraction engine over one document and return its evidence bundle.

    Args:
        run_id: Namespace for checkpoint keys; reuse it to resume a run.
        program: A normalized :class:`Program` or a loose mapping.
        document: Document text, a :class:`DocumentInput` or a mapping.
        provider: Model backend.
        model: Model name forwarded in every request.
        chunk_size: Shard window in UTF-16 code units.
        overlap: Overlap between consecutive shards.
        checkpoint_store: Defaults to a fresh in-memory store.
        retry_policy: Defaults to ``{attempts: 2, baseDelayMs: 1, maxDelayMs: 8, jitterRatio: 0}``.
        all_or_nothing: Re-raise the first shard failure instead of recording it.
        random, sleep, now, now_ms: Injectable sources for deterministic runs.
        time_budget_ms: Wall-clock budget checked before every shard attempt.
        repair_budgets: Character caps for the JSON repair stage.
        multi_pass_max_passes: Draft plus repair passes per shard.
        structured_mode: ``auto``, ``always`` or ``never`` use ``generate_structured``.
        max_schema_chars: Schema excerpt budget in prompts.
        max_workers: Shards run concurrently when greater than 1.

    Returns:
        The :class:`EvidenceBundle`.  Model output problems are reported in
        its diagnostics; only invalid arguments raise.
    """
    program = normalize_program(program)
    document = _coerce_document(document)
    policy = normalize_retry_policy(retry_policy)
    max_passes = _positive_int("multi_pass_max_passes", multi_pass_max_passes)
    budget_ms = _optional_non_negative_int("time_budget_ms", time_budget_ms)
    budgets = _normalize_repair_budgets(repair_budgets)
    if structured_mode not in ("auto", "always", "never"):
        raise ValueError(f"Unsupported structured_mode: {structured_mode!r}")

    store = checkpoint_store if checkpoint_store is not None else InMemoryCheckpointStore()
    clock_ms = now_ms or (lambda: time.time() * 1000)

    normalized = normalize_text(document.text, trim_trailing_whitespace=trim_trailing_whitespace_per_line)
    text_hash = sha256_hex(document.text)
    document_id = document.document_id or f"doc-{text_hash[:16]}"

    started_at_ms = _read_clock_ms(clock_ms)
    state = _RunState(
        deadline_at_ms=None if budget_ms is None else started_at_ms + budget_ms,
        now_ms=clock_ms,
    )

    shards = chunk_document(
        normalized.text,
        program.program_hash,
        chunk_size=chunk_size,
        overlap=overlap,
        document_id=document_id,
    )
    logger.info(
        "Run %s: %d shard(s), chunk_size=%d overlap=%d model=%s",
        run_id, len(shards), chunk_size, overlap, model,
    )

    prompt_log = PromptLog(
        program_hash=program.program_hash,
        shard_prompt_hashes=[
            ShardPromptHash(
                shard_id=shard.shard_id,
                prompt_hash=hash_prompt_text(compile_prompt(program, shard, max_schema_chars=max_schema_chars)),
            )
            for shard in shards
        ],
    )

    ctx = _ShardContext(
        program=program,
        provider=provider,
        model=model,
        document_text=normalized.text,
        repair_budgets=budgets,
        max_passes=max_passes,
        structured=uses_structured_generation(program.schema_, structured_mode),
        max_schema_chars=max_schema_chars,
    )

    def before_attempt(shard: DocumentShard, attempt: int) -> None:
        if state.deadline_passed():
            raise BudgetExhaustedError(DEADLINE_BEFORE_SHARD if attempt == 1 else DEADLINE_BEFORE_ATTEMPT)

    try:
        executions = execute_shards_with_checkpoint(
            run_id,
            shards,
            store,
            lambda shard: run_shard_passes(ctx, shard).to_dict(),
            policy,
            is_transient_error=is_transient_provider_error,
            random=random or _random.random,
            sleep=sleep,
            max_workers=max_workers,
            before_attempt=before_attempt,
            collect_failures=_collect_budget_failures if all_or_nothing else True,
        )
    except ShardValidationFailure as exc:
        raise exc.cause from exc

    for shard, execution in zip(shards, executions):
        _record_execution(state, shard, execution, max_passes)
        log_shard_outcome(logger, state.outcomes[-1])

    extractions = dedupe_and_sort_extractions(
        [extraction for outcome in state.outcomes for extraction in outcome.extractions]
    )

    budget_log = BudgetLog(
        time=TimeBudgetLog(
            time_budget_ms=budget_ms,
            deadline_reached=state.deadline_reached or state.deadline_passed(),
            started_at_ms=started_at_ms,
            deadline_at_ms=state.deadline_at_ms,
        ),
        retry=policy,
        repair=RepairBudgetLog(
            max_candidate_chars=budgets.max_candidate_chars if budgets else None,
            max_repair_chars=budgets.max_repair_chars if budgets else None,
            candidate_chars_truncated_count=state.candidate_truncations,
            repair_chars_truncated_count=state.repair_truncations,
        ),
    )

    diagnostics = RunDiagnostics(
        empty_result_kind=determine_empty_result_kind(extractions, state.failures),
        shard_outcomes=state.outcomes,
        failures=state.failures,
        checkpoint_hits=sum(1 for outcome in state.outcomes if outcome.from_checkpoint),
        prompt_log=prompt_log,
        budget_log=budget_log,
        multi_pass_log=MultiPassLog(max_passes=max_passes, shards=state.multi_pass),
        run_completeness=classify_run_completeness(len(shards), len(state.failures)),
        repair_log=RepairLogDiagnostics(entries=state.repair_entries),
    )

    bundle = EvidenceBundle(
        run_id=run_id,
        program=program,
        extractions=extractions,
        provenance=EvidenceProvenance(
            document_id=document_id,
            text_hash=text_hash,
            runtime=EvidenceRuntime(name="python", version=platform.python_version()),
            created_at=now() if now is not None else _default_now(),
            program_hash=program.program_hash,
        ),
        normalization_ledger=normalized.ledger,
        shard_plan=ShardPlan(chunk_size=chunk_size, overlap=overlap, shard_count=len(shards)),
        diagnostics=diagnostics,
    )
    log_run_summary(logger, bundle)
    return bundle


# ============================================================================
# Lean variant
# ============================================================================

class JsonPipelineShardLog(WireModel):
    shard_id: str
    provider_run_record: ProviderRunRecord
    pipeline: JsonPipelineLog


class EngineRunResult(WireModel):
    extractions: list[Extraction] = Field(default_factory=list)
    shards_processed: int = 0
    checkpoint_hits: int = 0
    json_pipeline_logs: list[JsonPipelineShardLog] = Field(default_factory=list)


def run_extraction_with_provider(
    run_id: str,
    program: Union[Program, Mapping[str, Any]],
    document_text: str,
    provider: Provider,
    model: str,
    chunk_size: int,
    overlap: int,
    *,
    document_id: Optional[str] = None,
    checkpoint_store: Optional[CheckpointStore] = None,
    retry_policy: Union[RetryPolicy, Mapping[str, Any], None] = None,
    random: Optional[Callable[[], float]] = None,
    sleep: Optional[Callable[[float], None]] = None,
) -> EngineRunResult:
    """Run every shard over raw *document_text* and return the extractions.

    Unlike :func:`run_with_evidence` there is no normalization, no
    deduplication and no diagnostics bundle; the first shard failure raises.
    """
    program = normalize_program(program)
    policy = normalize_retry_policy(retry_policy)
    document_id = document_id or f"doc-{sha256_hex(document_text)[:16]}"
    shards = chunk_document(
        document_text,
        program.program_hash,
        chunk_size=chunk_size,
        overlap=overlap,
        document_id=document_id,
    )
    ctx = _ShardContext(
        program=program,
        provider=provider,
        model=model,
        document_text=document_text,
        repair_budgets=None,
        max_passes=2,
        structured=uses_structured_generation(program.schema_, "auto"),
        max_schema_chars=DEFAULT_MAX_SCHEMA_CHARS,
    )

    try:
        executions = execute_shards_with_checkpoint(
            run_id,
            shards,
            checkpoint_store if checkpoint_store is not None else InMemoryCheckpointStore(),
            lambda shard: run_shard_passes(ctx, shard).to_dict(),
            policy,
            is_transient_error=is_transient_provider_error,
            random=random,
            sleep=sleep,
        )
    except ShardValidationFailure as exc:
        raise exc.cause from exc

    values = [ShardRunValue.model_validate(execution.value) for execution in executions]
    return EngineRunResult(
        extractions=[extraction for value in values for extraction in value.extractions],
        shards_processed=len(executions),
        checkpoint_hits=sum(1 for execution in executions if execution.from_checkpoint),
        json_pipeline_logs=[
            JsonPipelineShardLog(
                shard_id=execution.shard_id,
                provider_run_record=value.provider_run_record,
                pipeline=value.json_pipeline_log,
            )
            for execution, value in zip(executions, values)
        ],
    )
