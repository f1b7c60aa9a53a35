"""Run one unit of work per shard with retries and checkpoint-based resumption."""

from __future__ import annotations

import logging
import random as _random
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Generic, Sequence, TypeVar

from ..core.types import WireModel
from .checkpoint import CheckpointStore, build_checkpoint_key
from .chunk import DocumentShard
from .retry import RetryPolicy, compute_retry_delay_ms, should_retry

logger = logging.getLogger(__name__)

V = TypeVar("V")

RunShard = Callable[[DocumentShard], Any]
BeforeAttempt = Callable[[DocumentShard, int], None]


class RunCompleteness(WireModel):
    kind: str
    total_shards: int
    successful_shards: int
    failed_shards: int


@dataclass
class ShardExecution(Generic[V]):
    """Result of running (or restoring) one shard.

    ``attempts`` is 0 for checkpoint hits.  ``error`` is set when the shard
    failed and failures are being collected instead of raised.
    """

    shard_id: str
    value: V | None
    from_checkpoint: bool
    attempts: int
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class _ShardGaveUp(Exception):
    def __init__(self, cause: Exception, attempts: int) -> None:
        super().__init__(str(cause))
        self.cause = cause
        self.attempts = attempts


def default_transient_classifier(error: BaseException) -> bool:
    return getattr(error, "transient", False) is True


def default_sleep(milliseconds: float) -> None:
    time.sleep(milliseconds / 1000)


def classify_run_completeness(total_shards: int, failed_shards: int) -> RunCompleteness:
    if isinstance(total_shards, bool) or not isinstance(total_shards, int) or total_shards < 0:
        raise ValueError("totalShards must be a non-negative integer.")
    if (
        isinstance(failed_shards, bool)
        or not isinstance(failed_shards, int)
        or failed_shards < 0
        or failed_shards > total_shards
    ):
        raise ValueError("failedShards must be a non-negative integer <= totalShards.")

    successful = total_shards - failed_shards
    if failed_shards == 0:
        kind = "complete_success"
    elif successful > 0:
        kind = "partial_success"
    else:
        kind = "complete_failure"
    return RunCompleteness(
        kind=kind,
        total_shards=total_shards,
        successful_shards=successful,
        failed_shards=failed_shards,
    )


def _run_one(
    run_id: str,
    shard: DocumentShard,
    store: CheckpointStore,
    run_shard: RunShard,
    policy: RetryPolicy,
    is_transient_error: Callable[[BaseException], bool],
    random: Callable[[], float],
    sleep: Callable[[float], None],
    before_attempt: BeforeAttempt | None,
) -> ShardExecution[Any]:
    key = build_checkpoint_key(run_id, shard.shard_id)
    with store.claim(key):
        cached = store.get(key)
        if cached is not None:
            logger.debug("Checkpoint hit for shard %s", shard.shard_id)
            return ShardExecution(shard.shard_id, cached, from_checkpoint=True, attempts=0)

        attempt = 1
        while True:
            try:
                if before_attempt is not None:
                    before_attempt(shard, attempt)
                value = run_shard(shard)
            except Exception as exc:
                if not should_retry(exc, attempt, policy, is_transient_error):
                    raise _ShardGaveUp(exc, attempt) from exc
                delay = compute_retry_delay_ms(policy, attempt, random())
                logger.info(
                    "Shard %s attempt %d failed (%s); retrying in %sms",
                    shard.shard_id, attempt, exc, delay,
                )
                if delay > 0:
                    sleep(delay)
                attempt += 1
                continue

            # persisted before being reported as done
            store.set(key, value)
            return ShardExecution(shard.shard_id, value, from_checkpoint=False, attempts=attempt)


def execute_shards_with_checkpoint(
    run_id: str,
    shards: Sequence[DocumentShard],
    checkpoint_store: CheckpointStore,
    run_shard: RunShard,
    retry_policy: RetryPolicy,
    *,
    is_transient_error: Callable[[BaseException], bool] | None = None,
    random: Callable[[], float] | None = None,
    sleep: Callable[[float], None] | None = None,
    max_workers: int = 1,
    before_attempt: BeforeAttempt | None = None,
    collect_failures: bool | Callable[[BaseException], bool] = False,
) -> list[ShardExecution[Any]]:
    """Execute *run_shard* for every shard not already checkpointed.

    Args:
        run_id: Namespace for checkpoint keys.
        shards: Shards in declared order; results come back in this order.
        checkpoint_store: Where successful values are written and read back.
        run_shard: Unit of work; its return value is checkpointed.
        retry_policy: Attempt cap and backoff parameters.
        is_transient_error: Retry eligibility; defaults to ``error.transient``.
        random: ``[0, 1)`` source for jitter.
        sleep: Called with the delay in milliseconds.
        max_workers: ``> 1`` runs shards on a thread pool.
        before_attempt: Hook called before every attempt; raising from it
            fails the shard without calling *run_shard*.
        collect_failures: Record failures in the result list instead of
            raising the first one. A callable decides per error; errors it
            rejects are raised.

    Returns:
        One :class:`ShardExecution` per shard, in declared order.
    """
    if max_workers < 1:
        raise ValueError("max_workers must be >= 1.")
    is_transient_error = is_transient_error or default_transient_classifier
    random = random or _random.random
    sleep = sleep or default_sleep

    def should_collect(error: BaseException) -> bool:
        if callable(collect_failures):
            return collect_failures(error)
        return collect_failures

    def run(shard: DocumentShard) -> ShardExecution[Any]:
        try:
            return _run_one(
                run_id, shard, checkpoint_store, run_shard, retry_policy,
                is_transient_error, random, sleep, before_attempt,
            )
        except _ShardGaveUp as gave_up:
            if not should_collect(gave_up.cause):
                raise gave_up.cause from None
            return ShardExecution(
                shard.shard_id,
                None,
                from_checkpoint=False,
                attempts=gave_up.attempts,
                error=gave_up.cause,
            )

    if max_workers == 1 or len(shards) <= 1:
        return [run(shard) for shard in shards]

    with ThreadPoolExecutor(max_workers=min(max_workers, len(shards))) as pool:
        futures = [pool.submit(run, shard) for shard in shards]
        return [future.result() for future in futures]
