"""Cross-cutting helpers: session logging."""

from .logging import (
    get_current_log_file,
    get_session_id,
    log_llm_response,
    log_prompt,
    log_run_summary,
    log_shard_outcome,
    setup_logging,
)

__all__ = [
    "get_current_log_file",
    "get_session_id",
    "log_llm_response",
    "log_prompt",
    "log_run_summary",
    "log_shard_outcome",
    "setup_logging",
]
