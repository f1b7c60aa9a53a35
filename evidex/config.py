# evidex/config.py
"""
evidex configuration - single source of truth via Pydantic Settings.

Resolution order: CLI flags > env vars (EVIDEX_*) > .env file > defaults.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from .engine.retry import RetryPolicy
from .recovery.repair import RepairBudgets


class EvidexConfig(BaseSettings):
    """Engine defaults for runs started from the ``evidex`` CLI."""

    model_config = SettingsConfigDict(
        env_prefix="EVIDEX_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Model ---
    model: str = "replay"

    # --- Sharding ---
    chunk_size: int = Field(default=4096, gt=0)
    overlap: int = Field(default=256, ge=0)
    trim_trailing_whitespace: bool = False

    # --- Retry ---
    retry_attempts: int = Field(default=2, ge=1)
    retry_base_delay_ms: float = Field(default=1, ge=0)
    retry_max_delay_ms: float = Field(default=8, ge=0)
    retry_jitter_ratio: float = Field(default=0.0, ge=0, le=1)

    # --- Passes and budgets ---
    multi_pass_max_passes: int = Field(default=2, ge=1)
    max_schema_chars: int = Field(default=2000, gt=0)
    repair_max_candidate_chars: Optional[int] = Field(default=None, gt=0)
    repair_max_repair_chars: Optional[int] = Field(default=None, gt=0)
    time_budget_ms: Optional[int] = Field(default=None, ge=0)
    structured_mode: Literal["auto", "always", "never"] = "auto"
    max_workers: int = Field(default=1, ge=1)

    # --- Attestation ---
    attestation_key_id: Optional[str] = None
    attestation_key: Optional[SecretStr] = None

    # --- Paths ---
    home_dir: Path = Field(default_factory=lambda: Path.home() / ".evidex")

    @property
    def checkpoint_dir(self) -> Path:
        return self.home_dir / "checkpoints"

    @property
    def log_dir(self) -> Path:
        return self.home_dir / "logs"

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            attempts=self.retry_attempts,
            base_delay_ms=self.retry_base_delay_ms,
            max_delay_ms=self.retry_max_delay_ms,
            jitter_ratio=self.retry_jitter_ratio,
        )

    def repair_budgets(self) -> Optional[RepairBudgets]:
        if self.repair_max_candidate_chars is None and self.repair_max_repair_chars is None:
            return None
        return RepairBudgets(
            max_candidate_chars=self.repair_max_candidate_chars,
            max_repair_chars=self.repair_max_repair_chars,
        )


@lru_cache(maxsize=1)
def get_config() -> EvidexConfig:
    """Return the global config singleton."""
    return EvidexConfig()
