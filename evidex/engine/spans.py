"""Translate shard-local spans to document-global spans."""

from __future__ import annotations

from typing import Literal

from ..core.types import Span
from .chunk import DocumentShard

SpanMappingErrorCode = Literal["INVALID_SPAN", "SPAN_OUT_OF_RANGE"]


class SpanMappingError(ValueError):
    """A shard-local span that cannot be placed inside its shard."""

    def __init__(self, code: SpanMappingErrorCode, message: str) -> None:
        super().__init__(message)
        self.code = code


def map_shard_span_to_document(shard: DocumentShard, local_span: Span) -> Span:
    start, end = local_span.char_start, local_span.char_end
    if start < 0 or end < 0:
        raise SpanMappingError("SPAN_OUT_OF_RANGE", "Shard span bounds must be non-negative.")
    if start > end:
        raise SpanMappingError("INVALID_SPAN", "Shard span must satisfy charStart <= charEnd.")
    if end > shard.length:
        raise SpanMappingError("SPAN_OUT_OF_RANGE", "Shard span exceeds shard text bounds.")

    return Span(
        offset_mode=local_span.offset_mode,
        char_start=shard.start + start,
        char_end=shard.start + end,
    )
