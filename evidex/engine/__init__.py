"""Sharding, prompts, retries, checkpoints and shard execution.

The orchestrator lives in :mod:`evidex.engine.run`; it is imported by the
top-level package rather than here because evidence models depend on this
package.
"""

from .checkpoint import (
    CheckpointStore,
    FileCheckpointStore,
    InMemoryCheckpointStore,
    build_checkpoint_key,
)
from .chunk import DocumentShard, chunk_document, compute_shard_id
from .executor import (
    RunCompleteness,
    ShardExecution,
    classify_run_completeness,
    execute_shards_with_checkpoint,
)
from .prompts import (
    compile_prompt,
    compile_prompt_parts,
    compile_repair_prompt,
    escape_untrusted_prompt_text,
    hash_prompt_text,
)
from .retry import (
    DEFAULT_RETRY_POLICY,
    RetryPolicy,
    RetryPolicyError,
    compute_backoff_ms,
    compute_jitter_ms,
    compute_retry_delay_ms,
    normalize_retry_policy,
    should_retry,
)
from .spans import SpanMappingError, map_shard_span_to_document

__all__ = [
    "DEFAULT_RETRY_POLICY",
    "CheckpointStore",
    "DocumentShard",
    "FileCheckpointStore",
    "InMemoryCheckpointStore",
    "RetryPolicy",
    "RetryPolicyError",
    "RunCompleteness",
    "ShardExecution",
    "SpanMappingError",
    "build_checkpoint_key",
    "chunk_document",
    "classify_run_completeness",
    "compile_prompt",
    "compile_prompt_parts",
    "compile_repair_prompt",
    "compute_backoff_ms",
    "compute_jitter_ms",
    "compute_retry_delay_ms",
    "compute_shard_id",
    "escape_untrusted_prompt_text",
    "execute_shards_with_checkpoint",
    "hash_prompt_text",
    "map_shard_span_to_document",
    "normalize_retry_policy",
    "should_retry",
]
