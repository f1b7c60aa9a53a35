# tests/test_pipeline.py
"""Tests for the logged JSON recovery pipeline and streamed tool-call assembly."""

from __future__ import annotations

import json

import pytest


class TestParseJsonWithRepairPipeline:
    def test_clean_json(self):
        from evidex.recovery.pipeline import parse_json_with_repair_pipeline

        result = parse_json_with_repair_pipeline('{"extractions":[]}')
        assert result.ok
        assert result.value == {"extractions": []}
        log = result.log
        assert log.frames.used_frames is False
        assert log.extracted_json.found is True
        assert log.extracted_json.kind == "object"
        assert (log.extracted_json.start, log.extracted_json.end) == (0, 18)
        assert log.extracted_json.candidate_index == 0
        assert log.parse.ok is True
        assert "error" not in log.parse.to_dict()

    def test_prose_wrapped_and_repaired(self):
        from evidex.recovery.pipeline import parse_json_with_repair_pipeline

        result = parse_json_with_repair_pipeline('Sure!\n```json\n{"extractions": [],}\n```')
        assert result.ok
        assert result.value == {"extractions": []}
        assert result.log.repair.applied_steps() == ["fixTrailingCommas"]
        assert result.log.extracted_json.start == 14

    def test_log_offsets_count_utf16_units(self):
        from evidex.recovery.pipeline import parse_json_with_repair_pipeline

        result = parse_json_with_repair_pipeline('\U0001F600 {"a":1}')
        assert result.ok
        extracted = result.log.extracted_json
        assert (extracted.start, extracted.end) == (3, 10)
        assert extracted.source_length == 10
        assert extracted.candidate_length == 7

    def test_no_json_is_payload_missing(self):
        from evidex.recovery.pipeline import JsonPipelineFailure, parse_json_with_repair_pipeline

        result = parse_json_with_repair_pipeline("I cannot provide JSON for this request.")
        assert not result.ok
        assert result.error.failure_code == "json_payload_missing"
        assert result.log.extracted_json.found is False
        assert result.log.parse.to_dict()["error"]["failureCode"] == "json_payload_missing"
        with pytest.raises(JsonPipelineFailure) as info:
            result.unwrap()
        assert info.value.log is result.log

    def test_bare_scalar_parses_without_candidate(self):
        from evidex.recovery.pipeline import parse_json_with_repair_pipeline

        result = parse_json_with_repair_pipeline("  42 ")
        assert result.ok and result.value == 42
        assert result.log.extracted_json.found is False

    def test_candidate_that_fails_parse(self):
        from evidex.recovery.pipeline import parse_json_with_repair_pipeline

        result = parse_json_with_repair_pipeline("{'single': 'quotes'}")
        assert not result.ok
        assert result.error.failure_code == "json_parse_failed"
        assert result.log.extracted_json.found is True

    def test_malformed_stream(self):
        from evidex.recovery.pipeline import parse_json_with_repair_pipeline

        result = parse_json_with_repair_pipeline("data: {nope\n")
        assert not result.ok
        assert result.error.failure_code == "stream_frame_malformed"
        assert result.error.line == 1
        assert result.log.frames.used_frames is True

    def test_streamed_payload(self):
        from evidex.recovery.pipeline import parse_json_with_repair_pipeline

        chunks = ['{"extractions"', ":[]}"]
        stream = "".join(
            f"data: {json.dumps({'choices': [{'delta': {'content': c}}]})}\n\n" for c in chunks
        ) + "data: [DONE]\n"
        result = parse_json_with_repair_pipeline(stream)
        assert result.ok
        assert result.log.frames.to_dict() == {"usedFrames": True, "frameCount": 2}
        assert len(result.frames) == 2

    def test_accept_predicate_skips_leading_candidate(self):
        from evidex.recovery.pipeline import parse_json_with_repair_pipeline

        text = 'Calling tool {"tool": "extract"} -> {"extractions": []}'
        result = parse_json_with_repair_pipeline(
            text, accept=lambda value: isinstance(value, dict) and "extractions" in value
        )
        assert result.value == {"extractions": []}
        assert result.log.extracted_json.candidate_index == 1
        assert result.log.extracted_json.candidate_count == 2

    def test_accept_predicate_falls_back_to_first(self):
        from evidex.recovery.pipeline import parse_json_with_repair_pipeline

        result = parse_json_with_repair_pipeline('{"a": 1} {"b": 2}', accept=lambda value: False)
        assert result.ok
        assert result.value == {"a": 1}
        assert result.log.extracted_json.candidate_index == 0

    def test_budget_truncation_logged(self):
        from evidex.recovery.pipeline import parse_json_with_repair_pipeline
        from evidex.recovery.repair import RepairBudgets

        result = parse_json_with_repair_pipeline(
            '{"extractions": [1, 2, 3]}', repair=RepairBudgets(max_repair_chars=10)
        )
        assert not result.ok
        assert result.log.repair.budget.repair_chars_truncated is True
        assert result.log.to_dict()["repair"]["budget"]["maxRepairChars"] == 10


class TestAssembleStreamingToolCalls:
    def test_chat_completion_deltas_append(self):
        from evidex.recovery.tool_calls import assemble_streaming_tool_calls

        frames = [
            {"choices": [{"delta": {"tool_calls": [{"index": 0, "id": "call_1", "function": {"name": "emit", "arguments": '{"extr'}}]}}]},
            {"choices": [{"delta": {"tool_calls": [{"index": 0, "function": {"arguments": 'actions":[]}'}}]}}]},
        ]
        [call] = assemble_streaming_tool_calls(frames)
        assert call.to_dict() == {"index": 0, "id": "call_1", "name": "emit", "arguments": '{"extractions":[]}'}

    def test_parallel_calls_keep_first_seen_order(self):
        from evidex.recovery.tool_calls import assemble_streaming_tool_calls

        frames = [
            {"choices": [{"delta": {"tool_calls": [{"index": 1, "function": {"name": "b", "arguments": "[2"}}]}}]},
            {"choices": [{"delta": {"tool_calls": [{"index": 0, "function": {"name": "a", "arguments": "[1]"}}]}}]},
            {"choices": [{"delta": {"tool_calls": [{"index": 1, "function": {"arguments": "]"}}]}}]},
        ]
        calls = assemble_streaming_tool_calls(frames)
        assert [(c.name, c.index, c.arguments) for c in calls] == [("b", 1, "[2]"), ("a", 0, "[1]")]

    def test_responses_api_events(self):
        from evidex.recovery.tool_calls import assemble_streaming_tool_calls

        frames = [
            {"type": "response.output_item.added", "output_index": 0,
             "item": {"type": "function_call", "id": "fc_1", "name": "emit", "arguments": ""}},
            {"type": "response.function_call_arguments.delta", "item_id": "fc_1", "output_index": 0, "delta": '{"a":'},
            {"type": "response.function_call_arguments.delta", "item_id": "fc_1", "output_index": 0, "delta": "1}"},
            {"event": "response.function_call_arguments.done", "item_id": "fc_1", "arguments": '{"a":2}'},
        ]
        [call] = assemble_streaming_tool_calls(frames)
        assert (call.id, call.name, call.arguments) == ("fc_1", "emit", '{"a":2}')

    def test_gemini_object_args_serialized(self):
        from evidex.recovery.tool_calls import assemble_streaming_tool_calls

        frames = [{"candidates": [{"content": {"parts": [{"functionCall": {"name": "emit", "args": {"extractions": []}}}]}}]}]
        [call] = assemble_streaming_tool_calls(frames)
        assert call.name == "emit"
        assert json.loads(call.arguments) == {"extractions": []}

    def test_message_snapshot_replaces(self):
        from evidex.recovery.tool_calls import assemble_streaming_tool_calls

        frames = [
            {"choices": [{"delta": {"tool_calls": [{"index": 0, "id": "c1", "function": {"arguments": '{"partial'}}]}}]},
            {"message": {"tool_calls": [{"index": 0, "id": "c1", "function": {"name": "emit", "arguments": '{"done":true}'}}]}},
        ]
        [call] = assemble_streaming_tool_calls(frames)
        assert call.arguments == '{"done":true}'
        assert call.name == "emit"

    def test_non_dict_frames_ignored(self):
        from evidex.recovery.tool_calls import assemble_streaming_tool_calls

        assert assemble_streaming_tool_calls(["text", 3, None, {"choices": "x"}]) == []
