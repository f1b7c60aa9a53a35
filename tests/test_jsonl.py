# tests/test_jsonl.py
"""Tests for JSON Lines encoding and streaming decoding of evidence bundles."""

from __future__ import annotations

import pytest


@pytest.fixture
def bundles(program, payload):
    from evidex.engine.run import run_with_evidence
    from evidex.providers.fake import FakeProvider

    provider = FakeProvider(default_response=payload(("token", "βeta", 6, 10)))
    return [
        run_with_evidence(
            run_id, program, "Alpha βeta", provider, "model-x", 100, 0,
            now=lambda: "2026-01-01T00:00:00.000Z",
        )
        for run_id in ("run-α", "run-ω")
    ]


class TestJsonl:
    def test_encode_one_line_per_bundle(self, bundles):
        from evidex.evidence.jsonl import encode_evidence_bundles_to_jsonl

        text = encode_evidence_bundles_to_jsonl(bundles)
        assert text.endswith("\n")
        lines = text.splitlines()
        assert len(lines) == 2
        assert "βeta" in lines[0]
        assert lines[0].startswith('{"bundleVersion":"1",')

    def test_decode_text(self, bundles):
        from evidex.evidence.jsonl import decode_jsonl_to_evidence_bundles, encode_evidence_bundles_to_jsonl

        decoded = list(decode_jsonl_to_evidence_bundles(encode_evidence_bundles_to_jsonl(bundles)))
        assert [b.to_dict() for b in decoded] == [b.to_dict() for b in bundles]

    def test_decode_byte_chunks_split_inside_characters(self, bundles):
        from evidex.evidence.jsonl import decode_jsonl_to_evidence_bundles, encode_evidence_bundles_to_jsonl

        data = encode_evidence_bundles_to_jsonl(bundles).encode("utf-8")
        chunks = [data[i:i + 7] for i in range(0, len(data), 7)]
        decoded = list(decode_jsonl_to_evidence_bundles(iter(chunks)))
        assert [b.run_id for b in decoded] == ["run-α", "run-ω"]

    def test_blank_lines_and_crlf_skipped(self, bundles):
        from evidex.evidence.jsonl import decode_jsonl_to_evidence_bundles, encode_evidence_bundles_to_jsonl

        [line_a, line_b] = encode_evidence_bundles_to_jsonl(bundles).splitlines()
        text = f"\r\n{line_a}\r\n   \r\n{line_b}"
        assert len(list(decode_jsonl_to_evidence_bundles(text))) == 2

    def test_bad_json_reports_line_number(self, bundles):
        from evidex.evidence.jsonl import (
            JsonlDecodeError,
            decode_jsonl_to_evidence_bundles,
            encode_evidence_bundles_to_jsonl,
        )

        text = encode_evidence_bundles_to_jsonl(bundles[:1]) + "\n{oops\n"
        with pytest.raises(JsonlDecodeError) as info:
            list(decode_jsonl_to_evidence_bundles(text))
        assert info.value.line_number == 3
        assert "line 3" in str(info.value)

    def test_invalid_bundle_shape(self):
        from evidex.evidence.jsonl import JsonlDecodeError, decode_jsonl_to_evidence_bundles

        with pytest.raises(JsonlDecodeError) as info:
            list(decode_jsonl_to_evidence_bundles('{"runId": "x"}\n'))
        assert info.value.line_number == 1

    def test_write_and_read_files(self, bundles, tmp_path):
        from evidex.evidence.jsonl import read_jsonl, write_jsonl

        path = write_jsonl(tmp_path / "out" / "bundles.jsonl", bundles[:1])
        write_jsonl(path, bundles[1:], append=True)
        loaded = read_jsonl(path)
        assert [b.run_id for b in loaded] == ["run-α", "run-ω"]

        write_jsonl(path, bundles[:1])
        assert len(read_jsonl(path)) == 1


class TestLoneSurrogates:
    """A span may split a surrogate pair; the bundle must still persist."""

    @pytest.fixture
    def split_bundle(self, program, payload):
        from evidex.engine.run import run_with_evidence
        from evidex.providers.fake import FakeProvider

        provider = FakeProvider(default_response=payload(("token", "\ud83d", 1, 2)))
        bundle = run_with_evidence(
            "run-split", program, "a\U0001F600b", provider, "model-x", 100, 0,
            now=lambda: "2026-01-01T00:00:00.000Z",
        )
        assert [e.quote for e in bundle.extractions] == ["\ud83d"]
        return bundle

    def test_encoded_line_is_valid_utf8(self, split_bundle):
        from evidex.evidence.jsonl import encode_evidence_bundles_to_jsonl

        text = encode_evidence_bundles_to_jsonl([split_bundle])
        assert "\\ud83d" in text
        text.encode("utf-8")

    def test_file_and_bytes_round_trip(self, split_bundle, tmp_path):
        from evidex.evidence.jsonl import (
            decode_jsonl_to_evidence_bundles,
            encode_evidence_bundles_to_jsonl,
            read_jsonl,
            write_jsonl,
        )

        path = write_jsonl(tmp_path / "split.jsonl", [split_bundle])
        [loaded] = read_jsonl(path)
        assert loaded.extractions[0].quote == "\ud83d"
        assert loaded.to_dict() == split_bundle.to_dict()

        raw = encode_evidence_bundles_to_jsonl([split_bundle]).encode("utf-8")
        [decoded] = decode_jsonl_to_evidence_bundles(raw)
        assert decoded.to_dict() == split_bundle.to_dict()

    def test_escape_lone_surrogates_keeps_paired_text(self):
        from evidex.core.canonical import escape_lone_surrogates

        assert escape_lone_surrogates('"\U0001F600"') == '"\U0001F600"'
        assert escape_lone_surrogates('"x\udc00"') == '"x\\udc00"'
