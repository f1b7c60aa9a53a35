# tests/test_config.py
"""Tests for EvidexConfig -- Pydantic Settings single source of truth."""

from pathlib import Path

import pytest


class TestEvidexConfig:
    """Test EvidexConfig defaults and overrides."""

    def test_default_values(self):
        """Config should have sensible defaults without any env vars."""
        from evidex.config import EvidexConfig

        cfg = EvidexConfig()
        assert cfg.model == "replay"
        assert cfg.chunk_size == 4096
        assert cfg.overlap == 256
        assert cfg.multi_pass_max_passes == 2
        assert cfg.max_schema_chars == 2000
        assert cfg.structured_mode == "auto"
        assert cfg.max_workers == 1
        assert cfg.time_budget_ms is None
        assert cfg.attestation_key is None

    def test_env_override(self, monkeypatch):
        """Environment variables with EVIDEX_ prefix override defaults."""
        from evidex.config import EvidexConfig

        monkeypatch.setenv("EVIDEX_CHUNK_SIZE", "512")
        monkeypatch.setenv("EVIDEX_STRUCTURED_MODE", "never")
        monkeypatch.setenv("EVIDEX_ATTESTATION_KEY", "s3cret")
        cfg = EvidexConfig()
        assert cfg.chunk_size == 512
        assert cfg.structured_mode == "never"
        assert cfg.attestation_key.get_secret_value() == "s3cret"
        assert "s3cret" not in repr(cfg)

    def test_home_dir_default(self, monkeypatch):
        """home_dir defaults to ~/.evidex."""
        from evidex.config import EvidexConfig

        monkeypatch.delenv("EVIDEX_HOME_DIR", raising=False)
        cfg = EvidexConfig()
        assert cfg.home_dir == Path.home() / ".evidex"

    def test_derived_paths(self):
        """checkpoint_dir and log_dir derive from home_dir."""
        from evidex.config import EvidexConfig

        cfg = EvidexConfig()
        assert cfg.checkpoint_dir == cfg.home_dir / "checkpoints"
        assert cfg.log_dir == cfg.home_dir / "logs"

    @pytest.mark.parametrize(
        "name,value",
        [("EVIDEX_CHUNK_SIZE", "0"), ("EVIDEX_RETRY_ATTEMPTS", "0"), ("EVIDEX_RETRY_JITTER_RATIO", "2")],
    )
    def test_invalid_values_rejected(self, monkeypatch, name, value):
        from pydantic import ValidationError

        from evidex.config import EvidexConfig

        monkeypatch.setenv(name, value)
        with pytest.raises(ValidationError):
            EvidexConfig()

    def test_get_config_is_cached(self):
        from evidex.config import get_config

        assert get_config() is get_config()


class TestDerivedPolicies:
    def test_retry_policy(self, monkeypatch):
        from evidex.config import EvidexConfig

        monkeypatch.setenv("EVIDEX_RETRY_ATTEMPTS", "4")
        monkeypatch.setenv("EVIDEX_RETRY_MAX_DELAY_MS", "80")
        policy = EvidexConfig().retry_policy()
        assert policy.attempts == 4
        assert policy.max_delay_ms == 80

    def test_repair_budgets_unset_is_none(self):
        from evidex.config import EvidexConfig

        assert EvidexConfig().repair_budgets() is None

    def test_repair_budgets(self, monkeypatch):
        from evidex.config import EvidexConfig

        monkeypatch.setenv("EVIDEX_REPAIR_MAX_REPAIR_CHARS", "1000")
        budgets = EvidexConfig().repair_budgets()
        assert budgets.max_repair_chars == 1000
        assert budgets.max_candidate_chars is None
