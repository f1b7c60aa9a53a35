"""UTF-16 code-unit offset helpers.

Spans on the wire are measured in UTF-16 code units (``utf16_code_unit``),
while Python strings index by code point.  Every offset computation in the
engine goes through these helpers so that astral-plane characters (emoji,
rare CJK) count as two units, exactly as the wire format expects.
"""

from __future__ import annotations

OFFSET_MODE = "utf16_code_unit"

_CODEC = "utf-16-le"


def _is_bmp(text: str) -> bool:
    return all(ord(ch) < 0x10000 for ch in text)


def utf16_length(text: str) -> int:
    """Length of *text* in UTF-16 code units."""
    if _is_bmp(text):
        return len(text)
    return len(text.encode(_CODEC, "surrogatepass")) // 2


def utf16_slice(text: str, start: int, end: int) -> str:
    """Slice *text* by UTF-16 code-unit offsets (half-open ``[start, end)``).

    Bounds are clamped like ``str`` slicing.  A slice that cuts through a
    surrogate pair yields a lone surrogate rather than raising.
    """
    if _is_bmp(text):
        return text[start:end]
    units = text.encode(_CODEC, "surrogatepass")
    return units[start * 2:end * 2].decode(_CODEC, "surrogatepass")


def utf16_offset(text: str, index: int) -> int:
    """UTF-16 offset of the code-point *index* into *text*."""
    return utf16_length(text[:index])
