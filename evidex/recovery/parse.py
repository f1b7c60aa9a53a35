"""Strict JSON parsing with structured, position-aware errors."""

from __future__ import annotations

import json
from typing import Any, Literal

from ..core.offsets import utf16_length, utf16_offset
from ..core.types import WireModel

JsonParseFailureCode = Literal[
    "stream_frame_malformed",
    "json_payload_missing",
    "json_parse_failed",
    "schema_validation_failed",
]

SNIPPET_RADIUS = 20


class JsonParseError(WireModel):
    """Diagnostic record for a failed parse.

    ``position``, ``line`` and ``column`` come from the decoder and are
    ``None`` when it could not point at a location.  Positions, columns and
    ``input_length`` count UTF-16 code units, like spans.
    """

    name: Literal["JsonParseError"] = "JsonParseError"
    failure_code: JsonParseFailureCode = "json_parse_failed"
    message: str
    position: int | None = None
    line: int | None = None
    column: int | None = None
    snippet: str = ""
    input_length: int = 0


class JsonParseFailure(Exception):
    def __init__(self, detail: JsonParseError) -> None:
        super().__init__(detail.message)
        self.detail = detail


def snippet_at(text: str, position: int | None) -> str:
    if position is None:
        return text[:80]
    start = max(0, position - SNIPPET_RADIUS)
    return text[start:position + SNIPPET_RADIUS]


def _utf16_column(text: str, position: int) -> int:
    line_start = text.rfind("\n", 0, position) + 1
    return utf16_length(text[line_start:position]) + 1


def build_parse_error(
    text: str,
    message: str,
    *,
    failure_code: JsonParseFailureCode = "json_parse_failed",
    position: int | None = None,
    line: int | None = None,
    column: int | None = None,
) -> JsonParseError:
    """*position* indexes the Python string; the record reports UTF-16 units."""
    return JsonParseError(
        failure_code=failure_code,
        message=message,
        position=utf16_offset(text, position) if position is not None else None,
        line=line,
        column=_utf16_column(text, position) if position is not None and column is not None else column,
        snippet=snippet_at(text, position),
        input_length=utf16_length(text),
    )


def _reject_constant(name: str) -> Any:
    # json accepts NaN/Infinity by default; strict JSON does not
    raise ValueError(f"Unexpected token {name} is not valid JSON")


def parse_json_strict(text: str) -> Any:
    """``json.loads`` restricted to RFC 8259, raising :class:`JsonParseFailure`."""
    try:
        return json.loads(text, parse_constant=_reject_constant)
    except json.JSONDecodeError as exc:
        raise JsonParseFailure(
            build_parse_error(
                text,
                str(exc),
                position=exc.pos,
                line=exc.lineno,
                column=exc.colno,
            )
        ) from exc
    except (ValueError, RecursionError) as exc:
        raise JsonParseFailure(build_parse_error(text, str(exc))) from exc


def try_parse_json_strict(text: str) -> tuple[bool, Any, JsonParseError | None]:
    """Non-raising variant: ``(ok, value, error)``."""
    try:
        return True, parse_json_strict(text), None
    except JsonParseFailure as failure:
        return False, None, failure.detail
