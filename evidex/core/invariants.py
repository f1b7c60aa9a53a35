"""The grounding invariant: every extraction's quote is the document slice at its span."""

from __future__ import annotations

from typing import Literal

from .offsets import OFFSET_MODE, utf16_length, utf16_slice
from .types import Extraction, WireModel

QuoteInvariantErrorCode = Literal[
    "INVALID_SPAN",
    "SPAN_OUT_OF_RANGE",
    "QUOTE_MISMATCH",
    "UNSUPPORTED_OFFSET_MODE",
]


class QuoteInvariantError(WireModel):
    """Diagnostic detail carried by :class:`QuoteInvariantViolation`."""

    name: Literal["QuoteInvariantError"] = "QuoteInvariantError"
    code: QuoteInvariantErrorCode
    message: str
    quote: str
    actual_quote: str
    char_start: int | float | None
    char_end: int | float | None
    doc_length: int


class QuoteInvariantViolation(Exception):
    """Raised when an extraction is not grounded in the document."""

    def __init__(self, detail: QuoteInvariantError) -> None:
        super().__init__(detail.message)
        self.detail = detail

    @property
    def code(self) -> QuoteInvariantErrorCode:
        return self.detail.code


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _fail(
    code: QuoteInvariantErrorCode,
    message: str,
    *,
    quote: str,
    char_start: object,
    char_end: object,
    doc_length: int,
    actual_quote: str = "",
) -> QuoteInvariantViolation:
    return QuoteInvariantViolation(
        QuoteInvariantError(
            code=code,
            message=message,
            quote=quote,
            actual_quote=actual_quote,
            char_start=char_start if isinstance(char_start, (int, float)) else None,
            char_end=char_end if isinstance(char_end, (int, float)) else None,
            doc_length=doc_length,
        )
    )


def assert_quote_invariant(document_text: str, extraction: Extraction) -> None:
    """Check that ``document_text[span] == extraction.quote``.

    Raises :class:`QuoteInvariantViolation` with code ``INVALID_SPAN`` when a
    bound is not an integer or ``char_start > char_end``, ``SPAN_OUT_OF_RANGE``
    when a bound lies outside ``[0, len(document)]`` and ``QUOTE_MISMATCH``
    when the slice differs from the quote.  Lengths are UTF-16 code units.
    """
    span = extraction.span
    char_start, char_end = span.char_start, span.char_end
    doc_length = utf16_length(document_text)
    context = {
        "quote": extraction.quote,
        "char_start": char_start,
        "char_end": char_end,
        "doc_length": doc_length,
    }

    if span.offset_mode != OFFSET_MODE:
        raise _fail(
            "UNSUPPORTED_OFFSET_MODE",
            "Only utf16_code_unit offsets are supported.",
            **context,
        )

    if not _is_int(char_start) or not _is_int(char_end) or char_start > char_end:
        raise _fail(
            "INVALID_SPAN",
            "Span must contain integer bounds where charStart <= charEnd.",
            **context,
        )

    if char_start < 0 or char_end > doc_length:
        raise _fail(
            "SPAN_OUT_OF_RANGE",
            "Span must be within document bounds.",
            **context,
        )

    actual = utf16_slice(document_text, char_start, char_end)
    if actual != extraction.quote:
        raise _fail(
            "QUOTE_MISMATCH",
            "Extraction quote does not match the document slice at span.",
            actual_quote=actual,
            **context,
        )
