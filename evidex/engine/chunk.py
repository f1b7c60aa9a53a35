"""Split normalized document text into overlapping, content-addressed shards."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..core.canonical import canonical_json
from ..core.hashing import sha256_hex
from ..core.offsets import OFFSET_MODE

_CODEC = "utf-16-le"


@dataclass(frozen=True)
class DocumentShard:
    """A window ``[start, end)`` of the document, offsets in UTF-16 code units."""

    shard_id: str
    start: int
    end: int
    text: str

    @property
    def length(self) -> int:
        return self.end - self.start

    def to_dict(self) -> dict[str, Any]:
        return {"shardId": self.shard_id, "start": self.start, "end": self.end, "text": self.text}


def _validate(chunk_size: Any, overlap: Any, offset_mode: str) -> None:
    if isinstance(chunk_size, bool) or not isinstance(chunk_size, int) or chunk_size <= 0:
        raise ValueError("chunk_size must be a positive integer.")
    if isinstance(overlap, bool) or not isinstance(overlap, int) or overlap < 0:
        raise ValueError("overlap must be a non-negative integer.")
    if overlap >= chunk_size:
        raise ValueError("overlap must be smaller than chunk_size.")
    if offset_mode != OFFSET_MODE:
        raise ValueError(f"Unsupported offset mode: {offset_mode}")


def compute_shard_id(
    *,
    program_hash: str,
    document_id: str | None,
    chunk_size: int,
    overlap: int,
    offset_mode: str,
    start: int,
    end: int,
    text: str,
) -> str:
    return sha256_hex(
        canonical_json(
            {
                "programHash": program_hash,
                "documentId": document_id,
                "chunkSize": chunk_size,
                "overlap": overlap,
                "offsetMode": offset_mode,
                "start": start,
                "end": end,
                "text": text,
            }
        )
    )


def chunk_document(
    text: str,
    program_hash: str,
    *,
    chunk_size: int,
    overlap: int = 0,
    document_id: str | None = None,
    offset_mode: str = OFFSET_MODE,
) -> list[DocumentShard]:
    """Cut *text* into windows of ``chunk_size`` advancing by ``chunk_size - overlap``.

    The last window is clipped to the end of the text and an empty text
    yields a single empty shard.  Shard ids hash every input, so changing
    ``document_id``, ``chunk_size`` or ``overlap`` changes every id.

    Raises:
        ValueError: on a non-positive chunk size, negative overlap, an
            overlap not smaller than the chunk size, or an unknown offset mode.
    """
    _validate(chunk_size, overlap, offset_mode)

    units = text.encode(_CODEC, "surrogatepass")
    total = len(units) // 2
    bmp_only = total == len(text)

    def window(start: int, end: int) -> str:
        if bmp_only:
            return text[start:end]
        return units[start * 2:end * 2].decode(_CODEC, "surrogatepass")

    def make(start: int, end: int) -> DocumentShard:
        shard_text = window(start, end)
        shard_id = compute_shard_id(
            program_hash=program_hash,
            document_id=document_id,
            chunk_size=chunk_size,
            overlap=overlap,
            offset_mode=offset_mode,
            start=start,
            end=end,
            text=shard_text,
        )
        return DocumentShard(shard_id=shard_id, start=start, end=end, text=shard_text)

    if total == 0:
        return [make(0, 0)]

    shards: list[DocumentShard] = []
    stride = chunk_size - overlap
    start = 0
    while start < total:
        end = min(total, start + chunk_size)
        shards.append(make(start, end))
        if end == total:
            break
        start += stride
    return shards
