# tests/conftest.py
"""Shared fixtures: isolated evidex home, a minimal program and response helpers."""

from __future__ import annotations

import json
import logging

import pytest


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Keep config, logs and checkpoints out of the real ~/.evidex."""
    from evidex.config import get_config

    home = tmp_path / "evidex-home"
    monkeypatch.setenv("EVIDEX_HOME_DIR", str(home))
    monkeypatch.setenv("EVIDEX_LOG_DIR", str(home / "logs"))
    monkeypatch.delenv("EVIDEX_ATTESTATION_KEY", raising=False)
    get_config.cache_clear()
    yield home
    get_config.cache_clear()


@pytest.fixture(autouse=True)
def reset_evidex_logger():
    """Undo handlers and propagation changes made by setup_logging."""
    yield
    root = logging.getLogger("evidex")
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    for existing in root.filters[:]:
        root.removeFilter(existing)
    root.propagate = True
    root.setLevel(logging.NOTSET)


@pytest.fixture
def program():
    from evidex.core.program import normalize_program

    return normalize_program(
        {
            "instructions": "Extract every token that names a Greek letter.",
            "classes": [{"name": "token"}],
        }
    )


@pytest.fixture
def no_sleep():
    """Sleep stand-in that records requested delays instead of sleeping."""
    delays: list[float] = []

    def sleep(ms: float) -> None:
        delays.append(ms)

    sleep.delays = delays  # type: ignore[attr-defined]
    return sleep


def extraction_payload(*items: tuple[str, str, int, int]) -> str:
    """Provider reply text for ``(class, quote, start, end)`` tuples."""
    return json.dumps(
        {
            "extractions": [
                {
                    "extractionClass": cls,
                    "quote": quote,
                    "span": {"offsetMode": "utf16_code_unit", "charStart": start, "charEnd": end},
                    "grounding": "explicit",
                }
                for cls, quote, start, end in items
            ]
        }
    )


@pytest.fixture
def payload():
    return extraction_payload
