# tests/test_recovery.py
"""Tests for frame decoding, candidate extraction, repair steps and strict parsing."""

from __future__ import annotations

import json

import pytest


class TestDecodeStreamingJsonFrames:
    def test_plain_text_passes_through(self):
        from evidex.recovery.frames import decode_streaming_json_frames

        result = decode_streaming_json_frames('{"extractions":[]}')
        assert result.ok
        assert result.used_frames is False
        assert result.text == '{"extractions":[]}'

    def test_concatenates_chat_deltas(self):
        from evidex.recovery.frames import decode_streaming_json_frames

        stream = "\n".join(
            [
                ": keep-alive",
                'data: {"choices":[{"delta":{"content":"{\\"extr"}}]}',
                "",
                'data: {"choices":[{"delta":{"content":"actions\\":[]}"}}]}',
                "data: [DONE]",
            ]
        )
        result = decode_streaming_json_frames(stream)
        assert result.ok and result.used_frames
        assert result.text == '{"extractions":[]}'
        assert len(result.frames) == 2

    def test_gemini_parts_and_crlf(self):
        from evidex.recovery.frames import decode_streaming_json_frames

        frame = {"candidates": [{"content": {"parts": [{"text": "[1,"}, {"text": "2]"}]}}]}
        result = decode_streaming_json_frames(f"event: chunk\r\ndata: {json.dumps(frame)}\r\n")
        assert result.text == "[1,2]"

    def test_malformed_frame_reports_line(self):
        from evidex.recovery.frames import decode_streaming_json_frames

        result = decode_streaming_json_frames('data: {"ok":1}\ndata: {broken')
        assert not result.ok
        assert result.error.line == 2
        assert result.error.message == "Malformed streamed frame at line 2."
        assert result.error.frame_snippet == "{broken"

    def test_frames_without_content_fall_back_to_source(self):
        from evidex.recovery.frames import decode_streaming_json_frames

        source = 'data: {"type":"ping"}'
        result = decode_streaming_json_frames(source)
        assert result.ok
        assert result.used_frames is False
        assert result.text == source
        assert result.frames == [{"type": "ping"}]


class TestExtractJsonCandidates:
    def test_finds_balanced_regions_in_order(self):
        from evidex.recovery.extract import extract_json_candidates

        found = extract_json_candidates('note {"a": [1, {"b": 2}]} then [3] end')
        assert [(c.kind, c.text) for c in found] == [("object", '{"a": [1, {"b": 2}]}'), ("array", "[3]")]
        assert found[0].start == 5

    def test_braces_inside_strings_ignored(self):
        from evidex.recovery.extract import extract_first_json

        found = extract_first_json('x {"q": "} ] {", "e": "\\"}"} y')
        assert found is not None
        assert json.loads(found.text) == {"q": "} ] {", "e": '"}'}

    def test_mismatched_brackets_skipped(self):
        from evidex.recovery.extract import extract_json_candidates

        found = extract_json_candidates("{] [1]")
        assert [c.text for c in found] == ["[1]"]

    def test_unbalanced_yields_nothing(self):
        from evidex.recovery.extract import extract_first_json

        assert extract_first_json('{"a": 1') is None

    def test_max_candidates(self):
        from evidex.recovery.extract import extract_json_candidates

        assert len(extract_json_candidates("[1] [2] [3]", max_candidates=2)) == 2
        assert extract_json_candidates("[1]", max_candidates=0) == []

    def test_detect_flavor(self):
        from evidex.recovery.extract import detect_json_flavor

        assert detect_json_flavor('{"a":1}') == "json"
        assert detect_json_flavor('{"a":1}\n{"a":2}\n') == "jsonl"
        assert detect_json_flavor("nope") == "unknown"
        assert detect_json_flavor("   ") == "unknown"


class TestRepairJsonText:
    def test_steps_logged_in_fixed_order(self):
        from evidex.recovery.repair import repair_json_text

        result = repair_json_text('{"a":1}')
        assert [s.step for s in result.log.steps] == [
            "stripBOM",
            "removeAsciiControlChars",
            "trimOuterJunk",
            "fixTrailingCommas",
            "fixInvalidEscapes",
        ]
        assert result.log.changed is False
        assert result.text == '{"a":1}'

    def test_bom_junk_and_trailing_commas(self):
        from evidex.recovery.repair import repair_json_text

        result = repair_json_text('\ufeffHere you go: {"a": [1, 2,], "b": "x,]",} Thanks!')
        assert json.loads(result.text) == {"a": [1, 2], "b": "x,]"}
        assert result.log.applied_steps() == ["stripBOM", "trimOuterJunk", "fixTrailingCommas"]
        assert result.log.changed is True

    def test_budgets_count_utf16_units(self):
        from evidex.recovery.repair import RepairBudgets, repair_json_text

        result = repair_json_text('["\U0001F600"]', RepairBudgets(max_candidate_chars=5))
        assert result.log.budget.candidate_chars_truncated is True
        assert result.log.steps[0].before_length == 5

        result = repair_json_text('["\U0001F600"]', RepairBudgets(max_candidate_chars=6))
        assert result.log.budget.candidate_chars_truncated is False
        assert result.log.steps[0].before_length == 6

    def test_control_chars_removed(self):
        from evidex.recovery.repair import repair_json_text

        result = repair_json_text('{"a":\x00 1\x07}')
        assert result.text == '{"a": 1}'
        assert "removeAsciiControlChars" in result.log.applied_steps()

    def test_invalid_escapes_doubled_inside_strings(self):
        from evidex.recovery.repair import repair_json_text

        result = repair_json_text('{"path": "C:\\data\\new", "u": "\\u00e9\\q"}')
        assert json.loads(result.text) == {"path": "C:\\data\n" + "ew", "u": "é\\q"}
        assert result.log.applied_steps() == ["fixInvalidEscapes"]

    def test_valid_escapes_untouched(self):
        from evidex.recovery.repair import fix_invalid_escapes

        text = '{"a": "line\\nquote\\"slash\\\\ \\/ \\u0041"}'
        assert fix_invalid_escapes(text) == text

    def test_short_unicode_escape_is_doubled(self):
        from evidex.recovery.repair import fix_invalid_escapes

        assert fix_invalid_escapes('["\\u12"]') == '["\\\\u12"]'

    def test_budgets_truncate_and_are_recorded(self):
        from evidex.recovery.repair import RepairBudgets, repair_json_text

        result = repair_json_text("[1, 2, 3]   ", RepairBudgets(max_candidate_chars=9, max_repair_chars=4))
        assert result.text == "[1, "
        budget = result.log.budget
        assert budget.candidate_chars_truncated is True
        assert budget.repair_chars_truncated is True
        assert budget.max_repair_chars == 4
        assert result.log.changed is True

    @pytest.mark.parametrize("value", [0, -3])
    def test_invalid_budgets(self, value):
        from evidex.recovery.repair import RepairBudgets, repair_json_text

        with pytest.raises(ValueError, match="maxCandidateChars must be a positive integer."):
            repair_json_text("[]", RepairBudgets(max_candidate_chars=value))


class TestParseJsonStrict:
    def test_parses_valid_json(self):
        from evidex.recovery.parse import parse_json_strict

        assert parse_json_strict('{"a": [1, 2.5, null]}') == {"a": [1, 2.5, None]}

    def test_error_has_position_line_and_column(self):
        from evidex.recovery.parse import JsonParseFailure, parse_json_strict

        with pytest.raises(JsonParseFailure) as info:
            parse_json_strict('{\n  "a": ,\n}')
        detail = info.value.detail
        assert detail.failure_code == "json_parse_failed"
        assert detail.position == 9
        assert (detail.line, detail.column) == (2, 8)
        assert detail.input_length == 12
        assert '"a": ,' in detail.snippet

    def test_positions_count_utf16_units(self):
        from evidex.recovery.parse import JsonParseFailure, parse_json_strict

        with pytest.raises(JsonParseFailure) as info:
            parse_json_strict('{"\U0001F600": ,}')
        detail = info.value.detail
        assert detail.position == 7
        assert (detail.line, detail.column) == (1, 8)
        assert detail.input_length == 9

    @pytest.mark.parametrize("text", ["NaN", "[Infinity]", '{"a": -Infinity}'])
    def test_non_finite_constants_rejected(self, text):
        from evidex.recovery.parse import try_parse_json_strict

        ok, value, error = try_parse_json_strict(text)
        assert not ok and value is None
        assert error is not None and error.name == "JsonParseError"

    def test_empty_input_snippet(self):
        from evidex.recovery.parse import try_parse_json_strict

        ok, _, error = try_parse_json_strict("")
        assert not ok
        assert error.position == 0
        assert error.snippet == ""
