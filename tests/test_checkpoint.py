# tests/test_checkpoint.py
"""Tests for in-memory and file-backed checkpoint stores."""

from __future__ import annotations

import json
import threading

import pytest


@pytest.fixture(params=["memory", "file"])
def store(request, tmp_path):
    from evidex.engine.checkpoint import FileCheckpointStore, InMemoryCheckpointStore

    if request.param == "memory":
        return InMemoryCheckpointStore()
    return FileCheckpointStore(tmp_path / "ckpt")


class TestCheckpointStores:
    def test_key_format(self):
        from evidex.engine.checkpoint import build_checkpoint_key

        assert build_checkpoint_key("run-1", "abc") == "ckpt:v1:run-1:abc"

    def test_missing_key_is_none(self, store):
        assert store.get("ckpt:v1:r:missing") is None

    def test_set_get_delete(self, store):
        store.set("ckpt:v1:r:a", {"extractions": [], "n": 1})
        assert store.get("ckpt:v1:r:a") == {"extractions": [], "n": 1}
        store.delete("ckpt:v1:r:a")
        assert store.get("ckpt:v1:r:a") is None
        store.delete("ckpt:v1:r:a")

    def test_list_with_prefix(self, store):
        for key in ("ckpt:v1:r1:b", "ckpt:v1:r1:a", "ckpt:v1:r2:a"):
            store.set(key, 1)
        assert store.list() == ["ckpt:v1:r1:a", "ckpt:v1:r1:b", "ckpt:v1:r2:a"]
        assert store.list("ckpt:v1:r1:") == ["ckpt:v1:r1:a", "ckpt:v1:r1:b"]

    def test_claim_serializes_same_key(self, store):
        order: list[str] = []
        entered = threading.Event()
        release = threading.Event()

        def first():
            with store.claim("k"):
                order.append("first-in")
                entered.set()
                release.wait(timeout=5)
                order.append("first-out")

        def second():
            entered.wait(timeout=5)
            with store.claim("k"):
                order.append("second-in")

        t1 = threading.Thread(target=first)
        t2 = threading.Thread(target=second)
        t1.start()
        t2.start()
        entered.wait(timeout=5)
        release.set()
        t1.join(timeout=5)
        t2.join(timeout=5)
        assert order == ["first-in", "first-out", "second-in"]

    def test_claims_released_after_use(self, store):
        for key in ("a", "b", "c"):
            with store.claim(key):
                pass
        with pytest.raises(RuntimeError):
            with store.claim("d"):
                raise RuntimeError("boom")
        assert store._claims == {}


class TestFileCheckpointStore:
    def test_survives_new_instance(self, tmp_path):
        from evidex.engine.checkpoint import FileCheckpointStore

        FileCheckpointStore(tmp_path).set("ckpt:v1:run/1:abc", {"ok": True})
        assert FileCheckpointStore(tmp_path).get("ckpt:v1:run/1:abc") == {"ok": True}

    def test_file_layout(self, tmp_path):
        from evidex.engine.checkpoint import FileCheckpointStore

        FileCheckpointStore(tmp_path).set("ckpt:v1:r:a", [1, 2])
        [path] = list(tmp_path.glob("*.json"))
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["key"] == "ckpt:v1:r:a"
        assert data["value"] == [1, 2]
        assert "savedAt" in data
        assert not list(tmp_path.glob("*.tmp"))

    def test_value_with_lone_surrogate(self, tmp_path):
        from evidex.engine.checkpoint import FileCheckpointStore

        FileCheckpointStore(tmp_path).set("ckpt:v1:r:s", {"quote": "\ud83d"})
        assert FileCheckpointStore(tmp_path).get("ckpt:v1:r:s") == {"quote": "\ud83d"}
