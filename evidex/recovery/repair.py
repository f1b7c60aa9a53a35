"""Deterministic, logged repairs for almost-JSON model output.

Steps run in a fixed order and each one records whether it changed the
text.  Every step is string-literal aware where it matters, so repairs never
rewrite the content of a JSON string.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Literal

from pydantic import Field

from ..core.offsets import utf16_length, utf16_slice
from ..core.types import WireModel
from .extract import extract_first_json

RepairStepName = Literal[
    "stripBOM",
    "removeAsciiControlChars",
    "trimOuterJunk",
    "fixTrailingCommas",
    "fixInvalidEscapes",
]

_CONTROL_CHARS_RE = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f]")
_SIMPLE_ESCAPES = frozenset('"\\/bfnrt')
_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")


class RepairStep(WireModel):
    step: RepairStepName
    applied: bool
    before_length: int
    after_length: int


class RepairBudgetRecord(WireModel):
    max_candidate_chars: int | None = None
    max_repair_chars: int | None = None
    candidate_chars_truncated: bool = False
    repair_chars_truncated: bool = False


class RepairLog(WireModel):
    steps: list[RepairStep] = Field(default_factory=list)
    changed: bool = False
    budget: RepairBudgetRecord = Field(default_factory=RepairBudgetRecord)

    def applied_steps(self) -> list[str]:
        return [step.step for step in self.steps if step.applied]


class RepairBudgets(WireModel):
    """Optional character caps on the candidate and the repaired text."""

    max_candidate_chars: int | None = None
    max_repair_chars: int | None = None


@dataclass
class RepairResult:
    text: str
    log: RepairLog


def _normalize_limit(label: str, value: int | None) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"{label} must be a positive integer.")
    return value


# ---------------------------------------------------------------------------
# Individual steps
# ---------------------------------------------------------------------------


def strip_bom(text: str) -> str:
    return text[1:] if text.startswith("\ufeff") else text


def remove_ascii_control_chars(text: str) -> str:
    """Drop 0x00-0x1F except tab, LF and CR."""
    return _CONTROL_CHARS_RE.sub("", text)


def trim_outer_junk(text: str) -> str:
    """Keep only the first balanced JSON value; drops leading/trailing prose."""
    found = extract_first_json(text)
    if found is None:
        return text.strip()
    return found.text


def fix_trailing_commas(text: str) -> str:
    """Remove commas that directly precede ``]`` or ``}`` outside strings."""
    out: list[str] = []
    in_string = False
    escaped = False
    changed = False
    length = len(text)

    for index, char in enumerate(text):
        if in_string:
            out.append(char)
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
            out.append(char)
            continue

        if char != ",":
            out.append(char)
            continue

        lookahead = index + 1
        while lookahead < length and text[lookahead].isspace():
            lookahead += 1
        if lookahead < length and text[lookahead] in "]}":
            changed = True
            continue
        out.append(char)

    return "".join(out) if changed else text


def fix_invalid_escapes(text: str) -> str:
    r"""Double backslashes that do not start a legal JSON escape.

    Only string literals are rewritten.  ``"C:\data"`` becomes
    ``"C:\\data"`` (a literal backslash) while ``\n``, ``\"``, ``\\`` and
    ``\u00e9`` stay exactly as they are.
    """
    out: list[str] = []
    in_string = False
    changed = False
    index = 0
    length = len(text)

    while index < length:
        char = text[index]

        if not in_string:
            out.append(char)
            if char == '"':
                in_string = True
            index += 1
            continue

        if char == '"':
            in_string = False
            out.append(char)
            index += 1
            continue

        if char != "\\":
            out.append(char)
            index += 1
            continue

        following = text[index + 1] if index + 1 < length else ""
        if following and following in _SIMPLE_ESCAPES:
            out.append(text[index:index + 2])
            index += 2
            continue
        if following == "u":
            digits = text[index + 2:index + 6]
            if len(digits) == 4 and all(d in _HEX_DIGITS for d in digits):
                out.append(text[index:index + 6])
                index += 6
                continue

        out.append("\\\\")
        changed = True
        index += 1

    return "".join(out) if changed else text


_STEPS: tuple[tuple[RepairStepName, Callable[[str], str]], ...] = (
    ("stripBOM", strip_bom),
    ("removeAsciiControlChars", remove_ascii_control_chars),
    ("trimOuterJunk", trim_outer_junk),
    ("fixTrailingCommas", fix_trailing_commas),
    ("fixInvalidEscapes", fix_invalid_escapes),
)


def _truncate(text: str, limit: int | None) -> str:
    if limit is None or utf16_length(text) <= limit:
        return text
    return utf16_slice(text, 0, limit)


def repair_json_text(text: str, budgets: RepairBudgets | None = None) -> RepairResult:
    """Run every repair step over *text* and return the result plus its log.

    Budgets truncate by UTF-16 length only, before the steps (candidate) and
    after them (repaired), so identical input always yields identical output.
    Step lengths in the log are UTF-16 code units too.
    """
    budgets = budgets or RepairBudgets()
    max_candidate = _normalize_limit("maxCandidateChars", budgets.max_candidate_chars)
    max_repair = _normalize_limit("maxRepairChars", budgets.max_repair_chars)

    candidate = _truncate(text, max_candidate)
    candidate_truncated = candidate != text

    steps: list[RepairStep] = []
    current = candidate
    for name, fn in _STEPS:
        after = fn(current)
        steps.append(
            RepairStep(
                step=name,
                applied=after != current,
                before_length=utf16_length(current),
                after_length=utf16_length(after),
            )
        )
        current = after

    repaired = _truncate(current, max_repair)
    repair_truncated = repaired != current

    return RepairResult(
        text=repaired,
        log=RepairLog(
            steps=steps,
            changed=any(step.applied for step in steps) or candidate_truncated or repair_truncated,
            budget=RepairBudgetRecord(
                max_candidate_chars=max_candidate,
                max_repair_chars=max_repair,
                candidate_chars_truncated=candidate_truncated,
                repair_chars_truncated=repair_truncated,
            ),
        ),
    )
