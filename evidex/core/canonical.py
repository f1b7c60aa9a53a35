"""Key-order-independent JSON serialization.

``canonical_json`` is the single serializer behind every hash the engine
computes: program hashes, shard ids, request hashes, prompt schema excerpts
and evidence payload hashes.  Two values that differ only in dict insertion
order always render to the same text.

Rules:
  - object keys sorted lexicographically at every nesting level
  - arrays keep their order
  - no insignificant whitespace
  - integral floats render as integers (``1.0`` -> ``1``)
  - NaN / Infinity are rejected
  - lone surrogates are escaped as ``\\uXXXX``; other non-ASCII is literal
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel

_LONE_SURROGATE_RE = re.compile("[\ud800-\udfff]")


def escape_lone_surrogates(text: str) -> str:
    """Escape unpaired surrogates in JSON text so it encodes as UTF-8."""
    if _LONE_SURROGATE_RE.search(text) is None:
        return text
    return _LONE_SURROGATE_RE.sub(lambda m: "\\u%04x" % ord(m.group(0)), text)


def _encode_string(value: str) -> str:
    return escape_lone_surrogates(json.dumps(value, ensure_ascii=False))


def _encode_number(value: int | float) -> str:
    if isinstance(value, int):
        return str(value)
    if not math.isfinite(value):
        raise ValueError("Cannot canonicalize non-finite number values.")
    if value.is_integer() and abs(value) < 1e21:
        return str(int(value))
    return repr(value)


def _encode(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return _encode_number(value)
    if isinstance(value, str):
        return _encode_string(value)
    if isinstance(value, BaseModel):
        return _encode(value.model_dump(mode="json", by_alias=True))
    if isinstance(value, Mapping):
        items = []
        for key in sorted(value.keys()):
            if not isinstance(key, str):
                raise ValueError(f"Cannot canonicalize non-string key: {key!r}")
            items.append(f"{_encode_string(key)}:{_encode(value[key])}")
        return "{" + ",".join(items) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_encode(item) for item in value) + "]"
    raise ValueError(f"Cannot canonicalize value type: {type(value).__name__}")


def canonical_json(value: Any) -> str:
    """Render *value* as canonical JSON text."""
    return _encode(value)
