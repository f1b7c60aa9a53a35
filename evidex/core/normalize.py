"""Document text normalization with a ledger of what changed."""

from __future__ import annotations

import re
from dataclasses import dataclass

from .offsets import utf16_length
from .types import NormalizationLedger, NormalizationStep

_NEWLINE_RE = re.compile(r"\r\n?")
_TRAILING_WS_RE = re.compile(r"[\t ]+$", re.MULTILINE)


@dataclass
class NormalizationResult:
    text: str
    ledger: NormalizationLedger


def _build_step(step: str, before: str, after: str) -> NormalizationStep:
    return NormalizationStep(
        step=step,
        lossy=before != after,
        before_length=utf16_length(before),
        after_length=utf16_length(after),
    )


def normalize_newlines(text: str) -> NormalizationResult:
    normalized = _NEWLINE_RE.sub("\n", text)
    return NormalizationResult(
        text=normalized,
        ledger=NormalizationLedger(steps=[_build_step("normalizeNewlines", text, normalized)]),
    )


def trim_trailing_whitespace_per_line(text: str) -> NormalizationResult:
    normalized = _TRAILING_WS_RE.sub("", text)
    return NormalizationResult(
        text=normalized,
        ledger=NormalizationLedger(
            steps=[_build_step("trimTrailingWhitespacePerLine", text, normalized)]
        ),
    )


def normalize_text(
    text: str,
    *,
    trim_trailing_whitespace: bool = False,
) -> NormalizationResult:
    """Normalize newlines (always) and trailing whitespace (optional).

    Offsets in extractions refer to the normalized text, so the ledger records
    every step even when it was a no-op.
    """
    newlines = normalize_newlines(text)
    steps = list(newlines.ledger.steps)
    if not trim_trailing_whitespace:
        return NormalizationResult(text=newlines.text, ledger=NormalizationLedger(steps=steps))

    trimmed = trim_trailing_whitespace_per_line(newlines.text)
    steps.extend(trimmed.ledger.steps)
    return NormalizationResult(text=trimmed.text, ledger=NormalizationLedger(steps=steps))
