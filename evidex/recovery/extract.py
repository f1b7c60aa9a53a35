"""Locate balanced JSON values inside free-form model output."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Literal

JsonFlavor = Literal["json", "jsonl", "unknown"]

_CLOSERS = {"{": "}", "[": "]"}


@dataclass(frozen=True)
class JsonSlice:
    """A balanced ``{...}`` or ``[...]`` region of a larger text."""

    start: int
    end: int
    text: str
    kind: Literal["object", "array"]


def _scan_complete_json(text: str, start: int) -> JsonSlice | None:
    opening = text[start]
    if opening not in _CLOSERS:
        return None

    stack = [_CLOSERS[opening]]
    in_string = False
    escaped = False

    for index in range(start + 1, len(text)):
        char = text[index]

        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char in _CLOSERS:
            stack.append(_CLOSERS[char])
        elif char in ("}", "]"):
            if stack.pop() != char:
                return None
            if not stack:
                end = index + 1
                return JsonSlice(
                    start=start,
                    end=end,
                    text=text[start:end],
                    kind="object" if opening == "{" else "array",
                )

    return None


def extract_json_candidates(text: str, max_candidates: int | None = None) -> list[JsonSlice]:
    """Return balanced JSON regions in order of appearance.

    Scanning resumes after the end of each region found, so nested values are
    not reported separately.
    """
    if max_candidates is not None and max_candidates <= 0:
        return []

    slices: list[JsonSlice] = []
    index = 0
    while index < len(text):
        if text[index] in _CLOSERS:
            found = _scan_complete_json(text, index)
            if found is not None:
                slices.append(found)
                if max_candidates is not None and len(slices) >= max_candidates:
                    break
                index = found.end
                continue
        index += 1
    return slices


def extract_first_json(text: str) -> JsonSlice | None:
    """First balanced JSON object or array in *text*, if any."""
    found = extract_json_candidates(text, max_candidates=1)
    return found[0] if found else None


def detect_json_flavor(text: str) -> JsonFlavor:
    """Classify *text* as a single JSON document, JSON Lines, or neither."""
    trimmed = text.strip()
    if not trimmed:
        return "unknown"

    try:
        json.loads(trimmed)
        return "json"
    except json.JSONDecodeError:
        pass

    lines = [line.strip() for line in trimmed.splitlines() if line.strip()]
    if len(lines) < 2:
        return "unknown"
    for line in lines:
        try:
            json.loads(line)
        except json.JSONDecodeError:
            return "unknown"
    return "jsonl"
