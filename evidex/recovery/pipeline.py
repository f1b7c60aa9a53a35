"""Frame decode, candidate extraction, repair and strict parse as one logged pipeline.

Success and failure both carry the same :class:`JsonPipelineLog`, so the
orchestrator can put diagnostics into the evidence bundle whatever happened.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar, Literal

from pydantic import Field

from ..core.offsets import utf16_length, utf16_offset
from ..core.types import WireModel
from .extract import JsonSlice, extract_json_candidates
from .frames import decode_streaming_json_frames
from .parse import JsonParseError, build_parse_error, try_parse_json_strict
from .repair import RepairBudgets, RepairLog, RepairResult, repair_json_text

logger = logging.getLogger(__name__)

AcceptPredicate = Callable[[Any], bool]


class FrameLog(WireModel):
    used_frames: bool = False
    frame_count: int = 0


class ExtractedJsonLog(WireModel):
    """Where the chosen candidate sits in the source, in UTF-16 code units."""

    found: bool
    start: int | None = None
    end: int | None = None
    kind: Literal["object", "array"] | None = None
    source_length: int
    candidate_length: int
    candidate_count: int = 0
    candidate_index: int | None = None


class JsonPipelineParseLog(WireModel):
    omit_when_none: ClassVar[tuple[str, ...]] = ("error",)

    ok: bool
    error: JsonParseError | None = None


class JsonPipelineLog(WireModel):
    frames: FrameLog = Field(default_factory=FrameLog)
    extracted_json: ExtractedJsonLog
    repair: RepairLog
    parse: JsonPipelineParseLog


class JsonPipelineFailure(Exception):
    """Raised by :meth:`JsonPipelineResult.unwrap` on a failed pipeline run."""

    def __init__(self, error: JsonParseError, log: JsonPipelineLog) -> None:
        super().__init__(error.message)
        self.error = error
        self.log = log


@dataclass
class JsonPipelineResult:
    ok: bool
    log: JsonPipelineLog
    value: Any = None
    error: JsonParseError | None = None
    frames: list[Any] = field(default_factory=list)

    def unwrap(self) -> Any:
        if not self.ok:
            assert self.error is not None
            raise JsonPipelineFailure(self.error, self.log)
        return self.value


@dataclass
class _Attempt:
    slice: JsonSlice | None
    index: int | None
    candidate: str
    repaired: RepairResult
    ok: bool
    value: Any
    error: JsonParseError | None


def _attempt(candidate_slice: JsonSlice | None, index: int | None, text: str,
             budgets: RepairBudgets | None) -> _Attempt:
    candidate = candidate_slice.text if candidate_slice is not None else text
    repaired = repair_json_text(candidate, budgets)
    ok, value, error = try_parse_json_strict(repaired.text)
    return _Attempt(candidate_slice, index, candidate, repaired, ok, value, error)


def _select(text: str, budgets: RepairBudgets | None,
            accept: AcceptPredicate | None) -> tuple[_Attempt, int]:
    candidates = extract_json_candidates(text)
    if not candidates:
        return _attempt(None, None, text, budgets), 0

    first = _attempt(candidates[0], 0, text, budgets)
    if accept is None or (first.ok and accept(first.value)):
        return first, len(candidates)

    for index, candidate in enumerate(candidates[1:], start=1):
        attempt = _attempt(candidate, index, text, budgets)
        if attempt.ok and accept(attempt.value):
            logger.debug("Selected JSON candidate %d of %d", index + 1, len(candidates))
            return attempt, len(candidates)
    return first, len(candidates)


def parse_json_with_repair_pipeline(
    source_text: str,
    *,
    repair: RepairBudgets | None = None,
    accept: AcceptPredicate | None = None,
) -> JsonPipelineResult:
    """Recover a JSON value from raw provider output.

    *accept*, when given, picks the first balanced candidate that parses and
    satisfies it; otherwise the first candidate is used.  With no balanced
    candidate at all, the whole decoded text goes through repair and parse,
    and a failure is reported as ``json_payload_missing``.
    """
    decoded = decode_streaming_json_frames(source_text)
    if not decoded.ok:
        assert decoded.error is not None
        error = build_parse_error(
            source_text,
            decoded.error.message,
            failure_code="stream_frame_malformed",
            line=decoded.error.line,
        )
        log = JsonPipelineLog(
            frames=FrameLog(used_frames=True, frame_count=0),
            extracted_json=ExtractedJsonLog(
                found=False,
                source_length=utf16_length(source_text),
                candidate_length=0,
            ),
            repair=RepairLog(),
            parse=JsonPipelineParseLog(ok=False, error=error),
        )
        return JsonPipelineResult(ok=False, log=log, error=error)

    text = decoded.text
    attempt, candidate_count = _select(text, repair, accept)
    found = attempt.slice is not None

    error = attempt.error
    if error is not None and not found:
        error = error.model_copy(update={"failure_code": "json_payload_missing"})

    log = JsonPipelineLog(
        frames=FrameLog(used_frames=decoded.used_frames, frame_count=len(decoded.frames)),
        extracted_json=ExtractedJsonLog(
            found=found,
            start=utf16_offset(text, attempt.slice.start) if found else None,
            end=utf16_offset(text, attempt.slice.end) if found else None,
            kind=attempt.slice.kind if found else None,
            source_length=utf16_length(text),
            candidate_length=utf16_length(attempt.candidate),
            candidate_count=candidate_count,
            candidate_index=attempt.index,
        ),
        repair=attempt.repaired.log,
        parse=JsonPipelineParseLog(ok=attempt.ok, error=error),
    )

    if attempt.ok:
        return JsonPipelineResult(ok=True, log=log, value=attempt.value, frames=decoded.frames)
    return JsonPipelineResult(ok=False, log=log, error=error, frames=decoded.frames)
