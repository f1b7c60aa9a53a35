"""Decode Server-Sent-Events style streamed responses into plain text."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any

from ..core.types import WireModel

_LINE_SPLIT_RE = re.compile(r"\r?\n")
_DONE_SENTINELS = ("[DONE]", "DONE")


class FrameDecodeError(WireModel):
    line: int
    message: str
    frame_snippet: str


@dataclass
class FrameDecodeResult:
    """Outcome of :func:`decode_streaming_json_frames`.

    On success ``text`` holds the concatenated content fragments (or the
    untouched input when no frames were seen) and ``frames`` the parsed frame
    payloads in order.  On failure only ``error`` is set.
    """

    ok: bool
    used_frames: bool = False
    text: str = ""
    frames: list[Any] = field(default_factory=list)
    error: FrameDecodeError | None = None


def _collect_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if not isinstance(value, list):
        return ""
    parts: list[str] = []
    for entry in value:
        if isinstance(entry, str):
            parts.append(entry)
        elif isinstance(entry, dict) and isinstance(entry.get("text"), str):
            parts.append(entry["text"])
    return "".join(parts)


def extract_frame_content(frame: Any) -> str:
    """Text content carried by one decoded frame, or ``""``.

    Tried in order: ``choices[0].delta.content``,
    ``choices[0].message.content``, ``candidates[0].content.parts``, then
    the top-level ``output_text``, ``response`` and ``content`` strings.
    """
    if isinstance(frame, str):
        return frame
    if not isinstance(frame, dict):
        return ""

    choices = frame.get("choices")
    if isinstance(choices, list) and choices:
        choice = choices[0] if isinstance(choices[0], dict) else {}
        delta = choice.get("delta") if isinstance(choice.get("delta"), dict) else {}
        message = choice.get("message") if isinstance(choice.get("message"), dict) else {}
        content = _collect_text(delta.get("content"))
        if content:
            return content
        return _collect_text(message.get("content"))

    candidates = frame.get("candidates")
    if isinstance(candidates, list) and candidates and isinstance(candidates[0], dict):
        content = candidates[0].get("content")
        if isinstance(content, dict) and isinstance(content.get("parts"), list):
            return _collect_text(content["parts"])

    for key in ("output_text", "response", "content"):
        if isinstance(frame.get(key), str):
            return frame[key]
    return ""


def decode_streaming_json_frames(source_text: str) -> FrameDecodeResult:
    """Concatenate the content of ``data:`` frames in *source_text*.

    Input without any ``data:``/``event:``/``id:``/comment line passes
    through unchanged, as does framed input that carried no content.
    """
    fragments: list[str] = []
    frames: list[Any] = []
    saw_frame_prefix = False

    for index, raw_line in enumerate(_LINE_SPLIT_RE.split(source_text)):
        line_number = index + 1
        line = raw_line.strip()
        if not line:
            continue

        if line.startswith(("event:", "id:", ":")):
            saw_frame_prefix = True
            continue
        if not line.startswith("data:"):
            continue

        saw_frame_prefix = True
        payload = line[5:].strip()
        if not payload or payload in _DONE_SENTINELS:
            continue

        try:
            frame = json.loads(payload)
        except json.JSONDecodeError:
            return FrameDecodeResult(
                ok=False,
                error=FrameDecodeError(
                    line=line_number,
                    message=f"Malformed streamed frame at line {line_number}.",
                    frame_snippet=payload[:120],
                ),
            )

        frames.append(frame)
        content = extract_frame_content(frame)
        if content:
            fragments.append(content)

    if not saw_frame_prefix or not fragments:
        return FrameDecodeResult(ok=True, used_frames=False, text=source_text, frames=frames)
    return FrameDecodeResult(ok=True, used_frames=True, text="".join(fragments), frames=frames)
