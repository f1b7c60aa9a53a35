"""JSON Lines persistence for evidence bundles."""

from __future__ import annotations

import codecs
import json
import re
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Union

from pydantic import ValidationError

from ..core.canonical import escape_lone_surrogates
from .models import EvidenceBundle

_LINE_SPLIT_RE = re.compile(r"\r?\n")

JsonlSource = Union[str, bytes, Iterable[Union[str, bytes]]]


class JsonlDecodeError(ValueError):
    def __init__(self, line_number: int, message: str) -> None:
        super().__init__(f"Invalid evidence bundle at line {line_number}: {message}")
        self.line_number = line_number


def encode_evidence_bundles_to_jsonl(bundles: Iterable[EvidenceBundle]) -> str:
    """One compact JSON object per line, newline-terminated."""
    lines = [
        escape_lone_surrogates(json.dumps(bundle.to_dict(), ensure_ascii=False, separators=(",", ":")))
        for bundle in bundles
    ]
    return "\n".join(lines) + "\n"


def _iter_lines(source: JsonlSource) -> Iterator[str]:
    if isinstance(source, bytes):
        source = source.decode("utf-8")
    if isinstance(source, str):
        yield from _LINE_SPLIT_RE.split(source)
        return

    decoder = codecs.getincrementaldecoder("utf-8")()
    carry = ""
    for chunk in source:
        text = decoder.decode(chunk) if isinstance(chunk, bytes) else chunk
        segments = _LINE_SPLIT_RE.split(carry + text)
        carry = segments.pop()
        yield from segments
    carry += decoder.decode(b"", final=True)
    if carry.strip():
        yield carry


def decode_jsonl_to_evidence_bundles(source: JsonlSource) -> Iterator[EvidenceBundle]:
    """Yield bundles from JSONL text, bytes, or a stream of chunks.

    Chunks may split lines and multi-byte characters anywhere; blank lines
    are skipped.

    Raises:
        JsonlDecodeError: when a non-blank line is not a valid bundle.
    """
    for line_number, raw_line in enumerate(_iter_lines(source), start=1):
        line = raw_line.strip()
        if not line:
            continue
        try:
            yield EvidenceBundle.model_validate(json.loads(line))
        except json.JSONDecodeError as exc:
            raise JsonlDecodeError(line_number, exc.msg) from exc
        except ValidationError as exc:
            raise JsonlDecodeError(line_number, str(exc.errors()[0]["msg"])) from exc


def write_jsonl(path: str | Path, bundles: Iterable[EvidenceBundle], *, append: bool = False) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a" if append else "w", encoding="utf-8", newline="\n") as handle:
        handle.write(encode_evidence_bundles_to_jsonl(bundles))
    return path


def read_jsonl(path: str | Path) -> list[EvidenceBundle]:
    with Path(path).open("rb") as handle:
        return list(decode_jsonl_to_evidence_bundles(iter(lambda: handle.read(65536), b"")))
