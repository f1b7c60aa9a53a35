"""Bounded exponential backoff with proportional jitter."""

from __future__ import annotations

import math
from typing import Any, Callable

from pydantic import ValidationError, model_validator

from ..core.types import WireModel


class RetryPolicyError(ValueError):
    """Raised for a malformed retry policy."""


class RetryPolicy(WireModel):
    """``attempts`` counts the first try; delays are milliseconds."""

    attempts: int = 2
    base_delay_ms: int | float = 1
    max_delay_ms: int | float = 8
    jitter_ratio: int | float = 0

    @model_validator(mode="after")
    def _check_bounds(self) -> RetryPolicy:
        if self.attempts < 1:
            raise ValueError("Retry policy attempts must be >= 1.")
        if self.base_delay_ms < 0 or self.max_delay_ms < 0:
            raise ValueError("Retry policy delays must be non-negative.")
        if self.max_delay_ms < self.base_delay_ms:
            raise ValueError("maxDelayMs must be >= baseDelayMs.")
        if not 0 <= self.jitter_ratio <= 1:
            raise ValueError("jitterRatio must be between 0 and 1.")
        return self


DEFAULT_RETRY_POLICY = RetryPolicy(attempts=2, base_delay_ms=1, max_delay_ms=8, jitter_ratio=0)


def normalize_retry_policy(policy: RetryPolicy | dict[str, Any] | None) -> RetryPolicy:
    """Validate *policy*, accepting a model or a camelCase/snake_case mapping.

    Raises:
        RetryPolicyError: when a bound is violated.
    """
    if policy is None:
        return DEFAULT_RETRY_POLICY
    try:
        if isinstance(policy, RetryPolicy):
            return RetryPolicy.model_validate(policy.model_dump())
        return RetryPolicy.model_validate(policy)
    except ValidationError as exc:
        first = exc.errors()[0]
        message = str(first.get("ctx", {}).get("error") or first["msg"])
        raise RetryPolicyError(message) from exc


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def compute_backoff_ms(policy: RetryPolicy, attempt: int) -> float:
    """``min(max_delay_ms, base_delay_ms * 2 ** (attempt - 1))``."""
    exponent = max(0, attempt - 1)
    return min(policy.max_delay_ms, policy.base_delay_ms * 2 ** exponent)


def compute_jitter_ms(backoff_ms: float, jitter_ratio: float, random_value: float) -> int:
    if jitter_ratio == 0 or backoff_ms == 0:
        return 0
    clamped = min(1.0, max(0.0, random_value))
    return _round_half_up(backoff_ms * jitter_ratio * clamped)


def compute_retry_delay_ms(policy: RetryPolicy, attempt: int, random_value: float) -> float:
    backoff = compute_backoff_ms(policy, attempt)
    return backoff + compute_jitter_ms(backoff, policy.jitter_ratio, random_value)


def should_retry(
    error: BaseException,
    attempt: int,
    policy: RetryPolicy,
    is_transient_error: Callable[[BaseException], bool],
) -> bool:
    if attempt >= policy.attempts:
        return False
    return bool(is_transient_error(error))
