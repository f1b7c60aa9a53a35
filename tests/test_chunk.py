# tests/test_chunk.py
"""Tests for deterministic sharding and shard-to-document span mapping."""

from __future__ import annotations

import pytest

PROGRAM_HASH = "f" * 64


class TestChunkDocument:
    def test_overlapping_windows(self):
        from evidex.engine.chunk import chunk_document

        shards = chunk_document("abcdefghij", PROGRAM_HASH, chunk_size=5, overlap=1)
        assert [(s.start, s.end, s.text) for s in shards] == [
            (0, 5, "abcde"),
            (4, 9, "efghi"),
            (8, 10, "ij"),
        ]

    def test_exact_fit_has_no_trailing_shard(self):
        from evidex.engine.chunk import chunk_document

        shards = chunk_document("abcdefghij", PROGRAM_HASH, chunk_size=5)
        assert [(s.start, s.end) for s in shards] == [(0, 5), (5, 10)]

    def test_empty_document_yields_one_empty_shard(self):
        from evidex.engine.chunk import chunk_document

        [shard] = chunk_document("", PROGRAM_HASH, chunk_size=5)
        assert (shard.start, shard.end, shard.text) == (0, 0, "")

    def test_ids_are_deterministic_and_unique(self):
        from evidex.engine.chunk import chunk_document

        first = chunk_document("abcdefghij", PROGRAM_HASH, chunk_size=5, overlap=1)
        second = chunk_document("abcdefghij", PROGRAM_HASH, chunk_size=5, overlap=1)
        assert [s.shard_id for s in first] == [s.shard_id for s in second]
        assert len({s.shard_id for s in first}) == 3

    def test_ids_depend_on_document_id_and_program(self):
        from evidex.engine.chunk import chunk_document

        base = chunk_document("abc", PROGRAM_HASH, chunk_size=5)[0].shard_id
        assert chunk_document("abc", PROGRAM_HASH, chunk_size=5, document_id="d1")[0].shard_id != base
        assert chunk_document("abc", "e" * 64, chunk_size=5)[0].shard_id != base

    def test_offsets_in_utf16_units(self):
        from evidex.engine.chunk import chunk_document

        shards = chunk_document("a😀bc", PROGRAM_HASH, chunk_size=3)
        assert [(s.start, s.end, s.text) for s in shards] == [(0, 3, "a😀"), (3, 5, "bc")]

    def test_window_may_split_surrogate_pair(self):
        from evidex.engine.chunk import chunk_document

        shards = chunk_document("a😀", PROGRAM_HASH, chunk_size=2)
        assert shards[0].text == "a\ud83d"
        assert shards[1].text == "\ude00"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"chunk_size": 0},
            {"chunk_size": -1},
            {"chunk_size": 5, "overlap": -1},
            {"chunk_size": 5, "overlap": 5},
            {"chunk_size": True},
            {"chunk_size": 5, "offset_mode": "code_point"},
        ],
    )
    def test_invalid_options(self, kwargs):
        from evidex.engine.chunk import chunk_document

        with pytest.raises(ValueError):
            chunk_document("abc", PROGRAM_HASH, **kwargs)

    def test_shard_to_dict(self):
        from evidex.engine.chunk import chunk_document

        shard = chunk_document("abc", PROGRAM_HASH, chunk_size=5)[0]
        assert shard.to_dict() == {"shardId": shard.shard_id, "start": 0, "end": 3, "text": "abc"}
        assert shard.length == 3


class TestMapShardSpanToDocument:
    def _shard(self):
        from evidex.engine.chunk import chunk_document

        return chunk_document("abcdefghij", PROGRAM_HASH, chunk_size=5, overlap=1)[1]

    def test_adds_shard_start(self):
        from evidex.core.types import Span
        from evidex.engine.spans import map_shard_span_to_document

        mapped = map_shard_span_to_document(self._shard(), Span(char_start=1, char_end=3))
        assert (mapped.char_start, mapped.char_end) == (5, 7)

    def test_full_shard_span(self):
        from evidex.core.types import Span
        from evidex.engine.spans import map_shard_span_to_document

        mapped = map_shard_span_to_document(self._shard(), Span(char_start=0, char_end=5))
        assert (mapped.char_start, mapped.char_end) == (4, 9)

    @pytest.mark.parametrize(
        "start,end,code",
        [
            (3, 2, "INVALID_SPAN"),
            (-1, 2, "SPAN_OUT_OF_RANGE"),
            (0, 6, "SPAN_OUT_OF_RANGE"),
        ],
    )
    def test_rejects_bad_spans(self, start, end, code):
        from evidex.core.types import Span
        from evidex.engine.spans import SpanMappingError, map_shard_span_to_document

        with pytest.raises(SpanMappingError) as info:
            map_shard_span_to_document(self._shard(), Span(char_start=start, char_end=end))
        assert info.value.code == code
