"""Checkpoint stores for resumable shard execution."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator
from urllib.parse import quote, unquote

from ..core.canonical import escape_lone_surrogates

logger = logging.getLogger(__name__)

CHECKPOINT_KEY_VERSION = "v1"


def build_checkpoint_key(run_id: str, shard_id: str) -> str:
    return f"ckpt:{CHECKPOINT_KEY_VERSION}:{run_id}:{shard_id}"


class _Claim:
    __slots__ = ("lock", "holders")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.holders = 0


class CheckpointStore(ABC):
    """Key-value store for completed shard results.

    ``get`` returns ``None`` for a missing key.  ``claim`` serializes callers
    working on the same key so that a get-then-set sequence is atomic per key.
    """

    def __init__(self) -> None:
        self._claims_lock = threading.Lock()
        self._claims: dict[str, _Claim] = {}

    @abstractmethod
    def get(self, key: str) -> Any | None: ...

    @abstractmethod
    def set(self, key: str, value: Any) -> None: ...

    @abstractmethod
    def delete(self, key: str) -> None: ...

    @abstractmethod
    def list(self, prefix: str | None = None) -> list[str]: ...

    @contextmanager
    def claim(self, key: str) -> Iterator[None]:
        with self._claims_lock:
            entry = self._claims.get(key)
            if entry is None:
                entry = self._claims[key] = _Claim()
            entry.holders += 1
        try:
            with entry.lock:
                yield
        finally:
            # dropped once nobody holds or waits on it
            with self._claims_lock:
                entry.holders -= 1
                if entry.holders == 0:
                    del self._claims[key]


class InMemoryCheckpointStore(CheckpointStore):
    """Process-local store; lives as long as the instance."""

    def __init__(self) -> None:
        super().__init__()
        self._data: dict[str, Any] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def list(self, prefix: str | None = None) -> list[str]:
        with self._lock:
            keys = sorted(self._data)
        if not prefix:
            return keys
        return [key for key in keys if key.startswith(prefix)]

    def __len__(self) -> int:
        return len(self._data)


class FileCheckpointStore(CheckpointStore):
    """Durable store: one JSON file per key under ``directory``.

    Values must be JSON-serializable.  Writes go to a temp file that is then
    renamed over the target, so a crash never leaves a half-written entry.
    """

    SUFFIX = ".json"

    def __init__(self, directory: str | Path) -> None:
        super().__init__()
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.directory / f"{quote(key, safe='')}{self.SUFFIX}"

    def get(self, key: str) -> Any | None:
        path = self._path(key)
        if not path.exists():
            return None
        data = json.loads(path.read_text(encoding="utf-8"))
        return data.get("value")

    def set(self, key: str, value: Any) -> None:
        payload = {
            "key": key,
            "savedAt": datetime.now(timezone.utc).isoformat(),
            "value": value,
        }
        text = escape_lone_surrogates(json.dumps(payload, ensure_ascii=False))
        fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=".ckpt-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(text)
            os.replace(tmp_name, self._path(key))
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug("Checkpoint saved: %s", key)

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def list(self, prefix: str | None = None) -> list[str]:
        keys = sorted(
            unquote(path.name[: -len(self.SUFFIX)])
            for path in self.directory.glob(f"*{self.SUFFIX}")
        )
        if not prefix:
            return keys
        return [key for key in keys if key.startswith(prefix)]
