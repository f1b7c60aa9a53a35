"""Reassemble tool/function calls whose arguments arrive across stream frames.

Four wire shapes are understood:

* Chat Completions deltas, ``choices[].delta.tool_calls[]`` (appended).
* Responses API events, ``response.output_item.added`` and
  ``response.function_call_arguments.delta`` (appended) and
  ``response.function_call_arguments.done`` (replaced).
* Gemini ``candidates[].content.parts[].functionCall`` (replaced, since each
  part carries the full args object).
* A final ``message.tool_calls[]`` snapshot (replaced).
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Iterable


@dataclass(frozen=True)
class AssembledToolCall:
    index: int
    id: str | None
    name: str | None
    arguments: str

    def to_dict(self) -> dict[str, Any]:
        return {"index": self.index, "id": self.id, "name": self.name, "arguments": self.arguments}


@dataclass
class _ToolCallDelta:
    index: int | None = None
    id: str | None = None
    name: str | None = None
    append: str | None = None
    replace: str | None = None


@dataclass
class _Slot:
    order: int
    index: int
    id: str | None
    name: str | None
    arguments: str = ""


def _as_arguments(value: Any) -> str | None:
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    return None


def _as_int(value: Any) -> int | None:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def _as_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _first_present(record: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if record.get(key) is not None:
            return record[key]
    return None


def _chat_completion_deltas(frame: dict[str, Any]) -> list[_ToolCallDelta]:
    deltas: list[_ToolCallDelta] = []
    choices = frame.get("choices")
    if not isinstance(choices, list):
        return deltas
    for choice in choices:
        if not isinstance(choice, dict) or not isinstance(choice.get("delta"), dict):
            continue
        tool_calls = choice["delta"].get("tool_calls")
        if not isinstance(tool_calls, list):
            continue
        for call in tool_calls:
            if not isinstance(call, dict):
                continue
            function = call.get("function") if isinstance(call.get("function"), dict) else {}
            deltas.append(
                _ToolCallDelta(
                    index=_as_int(call.get("index")),
                    id=_as_str(call.get("id")),
                    name=_as_str(function.get("name")),
                    append=_as_arguments(function.get("arguments")),
                )
            )
    return deltas


def _gemini_deltas(frame: dict[str, Any]) -> list[_ToolCallDelta]:
    deltas: list[_ToolCallDelta] = []
    candidates = frame.get("candidates")
    if not isinstance(candidates, list):
        return deltas
    for candidate in candidates:
        content = candidate.get("content") if isinstance(candidate, dict) else None
        parts = content.get("parts") if isinstance(content, dict) else None
        if not isinstance(parts, list):
            continue
        for part in parts:
            call = part.get("functionCall") if isinstance(part, dict) else None
            if not isinstance(call, dict):
                continue
            args = call.get("args")
            text = _as_arguments(args)
            if text is None:
                continue
            incremental = isinstance(args, str)
            deltas.append(
                _ToolCallDelta(
                    name=_as_str(call.get("name")),
                    append=text if incremental else None,
                    replace=None if incremental else text,
                )
            )
    return deltas


def _responses_api_deltas(frame: dict[str, Any]) -> list[_ToolCallDelta]:
    event = _as_str(frame.get("event")) or _as_str(frame.get("type"))
    if event == "response.output_item.added":
        item = frame.get("item")
        if not isinstance(item, dict) or item.get("type") not in ("function_call", "tool_call"):
            return []
        text = _as_arguments(item.get("arguments"))
        if text is None:
            return []
        index = _as_int(_first_present(item, "output_index", "index"))
        if index is None:
            index = _as_int(frame.get("output_index"))
        return [
            _ToolCallDelta(
                index=index,
                id=_as_str(item.get("id")) or _as_str(item.get("call_id")),
                name=_as_str(item.get("name")),
                append=text,
            )
        ]

    if event == "response.function_call_arguments.delta":
        delta = _as_str(frame.get("delta"))
        if delta is None:
            return []
        return [
            _ToolCallDelta(
                index=_as_int(_first_present(frame, "output_index", "index")),
                id=_as_str(frame.get("item_id")) or _as_str(frame.get("id")),
                append=delta,
            )
        ]

    if event == "response.function_call_arguments.done":
        text = _as_arguments(frame.get("arguments"))
        if text is None:
            return []
        return [
            _ToolCallDelta(
                index=_as_int(_first_present(frame, "output_index", "index")),
                id=_as_str(frame.get("item_id")) or _as_str(frame.get("id")),
                replace=text,
            )
        ]

    return []


def _message_snapshot_deltas(frame: dict[str, Any]) -> list[_ToolCallDelta]:
    message = frame.get("message")
    if not isinstance(message, dict) or not isinstance(message.get("tool_calls"), list):
        return []
    deltas: list[_ToolCallDelta] = []
    for call in message["tool_calls"]:
        if not isinstance(call, dict):
            continue
        function = call.get("function") if isinstance(call.get("function"), dict) else {}
        text = _as_arguments(function.get("arguments"))
        if text is None:
            continue
        deltas.append(
            _ToolCallDelta(
                index=_as_int(call.get("index")),
                id=_as_str(call.get("id")),
                name=_as_str(function.get("name")),
                replace=text,
            )
        )
    return deltas


def parse_tool_call_deltas(frame: Any) -> list[_ToolCallDelta]:
    if not isinstance(frame, dict):
        return []
    return (
        _chat_completion_deltas(frame)
        + _gemini_deltas(frame)
        + _responses_api_deltas(frame)
        + _message_snapshot_deltas(frame)
    )


class _SlotTable:
    def __init__(self) -> None:
        self.slots: list[_Slot] = []
        self._by_id: dict[str, _Slot] = {}
        self._by_index: dict[int, _Slot] = {}

    def bind(self, delta: _ToolCallDelta) -> _Slot:
        slot = self._by_id.get(delta.id) if delta.id is not None else None
        if slot is None and delta.index is not None:
            slot = self._by_index.get(delta.index)

        if slot is None:
            slot = _Slot(
                order=len(self.slots),
                index=delta.index if delta.index is not None else len(self.slots),
                id=delta.id,
                name=delta.name,
            )
            self.slots.append(slot)

        if delta.id is not None:
            slot.id = delta.id
            self._by_id[delta.id] = slot
        if delta.index is not None:
            slot.index = delta.index
            self._by_index[delta.index] = slot
        if delta.name is not None and slot.name is None:
            slot.name = delta.name
        return slot


def assemble_streaming_tool_calls(frames: Iterable[Any]) -> list[AssembledToolCall]:
    """Fold decoded frames into complete tool calls, in first-seen order."""
    table = _SlotTable()
    for frame in frames:
        for delta in parse_tool_call_deltas(frame):
            slot = table.bind(delta)
            if delta.replace is not None:
                slot.arguments = delta.replace
            if delta.append is not None:
                slot.arguments += delta.append

    return [
        AssembledToolCall(index=slot.index, id=slot.id, name=slot.name, arguments=slot.arguments)
        for slot in sorted(table.slots, key=lambda slot: slot.order)
    ]
