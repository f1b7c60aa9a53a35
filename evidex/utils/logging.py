"""
evidex logging utilities - session logs for runs, prompts and provider output.

Overview:
---------
Session-based file logging for extraction runs.  Library modules only ever
call ``logging.getLogger(__name__)``; handlers are attached here, by the CLI
or by an embedding application, never on import.

Log Location:
-------------
- Default: ~/.evidex/logs/ (``EVIDEX_HOME_DIR`` moves the whole home)
- Each CLI run creates a timestamped log file with a session ID
- A symlink 'evidex.log' always points to the latest session
- ``EVIDEX_LOG_DIR`` overrides the directory directly

Log Levels:
-----------
- DEBUG: full prompts, raw provider responses, repair steps
- INFO: run and shard summaries, attestation
- WARNING: shard failures, retries
- ERROR: runs that produced no evidence because every shard failed

Usage:
------
    from evidex.utils.logging import setup_logging, log_run_summary

    log_file = setup_logging(level="DEBUG")
"""

from __future__ import annotations

import logging
import os
import sys
import uuid
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from ..evidence.models import EvidenceBundle, ShardOutcome

# ============================================================================
# Constants
# ============================================================================

ROOT_LOGGER_NAME = "evidex"
DEFAULT_LOG_LEVEL = "INFO"
SYMLINK_NAME = "evidex.log"

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(session_id)s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
FILE_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(session_id)s | %(name)s:%(lineno)d | %(message)s"

_log_file_path: Optional[Path] = None
_session_id: Optional[str] = None


# ============================================================================
# Session ID filter and formatter
# ============================================================================

class SessionIdFilter(logging.Filter):
    """Stamp every record with the current session id."""

    def __init__(self, session_id: str):
        super().__init__()
        self.session_id = session_id

    def filter(self, record: logging.LogRecord) -> bool:
        record.session_id = self.session_id  # type: ignore[attr-defined]
        return True


class SessionFormatter(logging.Formatter):
    """Formatter that tolerates records emitted before a session exists."""

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "session_id"):
            record.session_id = _session_id or "N/A"  # type: ignore[attr-defined]
        return super().format(record)


# ============================================================================
# Setup
# ============================================================================

def generate_session_id() -> str:
    return uuid.uuid4().hex[:6]


def get_log_directory() -> Path:
    """Resolve the log directory from ``EVIDEX_LOG_DIR`` or the configured home."""
    env_log_dir = os.getenv("EVIDEX_LOG_DIR")
    if env_log_dir:
        return Path(env_log_dir)
    from ..config import get_config

    return get_config().log_dir


def generate_log_filename(session_id: str) -> str:
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return f"evidex_{timestamp}_{session_id}.log"


def setup_logging(
    level: Optional[str] = None,
    log_dir: Optional[Path] = None,
    console_output: bool = False,
) -> Path:
    """
    Attach a fresh session file handler to the ``evidex`` logger.

    Parameters
    ----------
    level : str, optional
        DEBUG, INFO, WARNING or ERROR.  Falls back to ``EVIDEX_LOG_LEVEL``,
        then INFO.
    log_dir : Path, optional
        Directory for log files.  Defaults to :func:`get_log_directory`.
    console_output : bool
        Also log to stderr.

    Returns
    -------
    Path
        The log file for this session.
    """
    global _log_file_path, _session_id

    _session_id = generate_session_id()

    if level is None:
        level = os.getenv("EVIDEX_LOG_LEVEL", DEFAULT_LOG_LEVEL)
    log_level = getattr(logging, level.upper(), logging.INFO)

    log_dir = Path(log_dir) if log_dir is not None else get_log_directory()
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / generate_log_filename(_session_id)
    _log_file_path = log_file

    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    for existing in root.filters[:]:
        root.removeFilter(existing)

    root.setLevel(log_level)
    root.addFilter(SessionIdFilter(_session_id))

    file_handler = logging.FileHandler(log_file, encoding="utf-8", errors="backslashreplace")
    file_handler.setLevel(log_level)
    file_handler.setFormatter(SessionFormatter(FILE_LOG_FORMAT, LOG_DATE_FORMAT))
    root.addHandler(file_handler)

    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(log_level)
        console_handler.setFormatter(SessionFormatter(LOG_FORMAT, LOG_DATE_FORMAT))
        root.addHandler(console_handler)

    root.propagate = False

    symlink_path = log_dir / SYMLINK_NAME
    try:
        if symlink_path.is_symlink() or symlink_path.exists():
            symlink_path.unlink()
        symlink_path.symlink_to(log_file.name)
    except OSError:
        # no symlink permission (e.g. Windows without developer mode)
        pass

    root.info("=" * 80)
    root.info("evidex logging session started")
    root.info("  Session ID: %s", _session_id)
    root.info("  Log file: %s", log_file)
    root.info("  Log level: %s", level.upper())
    root.info("=" * 80)
    return log_file


def get_current_log_file() -> Optional[Path]:
    return _log_file_path


def get_session_id() -> Optional[str]:
    return _session_id


# ============================================================================
# Structured helpers
# ============================================================================

def _truncate(content: str, truncate_at: int) -> str:
    if len(content) > truncate_at:
        return content[:truncate_at] + f"... [TRUNCATED, {len(content)} chars total]"
    return content


def log_prompt(
    logger: logging.Logger,
    prompt_type: str,
    prompt_content: str,
    truncate_at: int = 2000,
) -> None:
    """Log a prompt at DEBUG, e.g. ``prompt_type="draft shard 1a2b"``."""
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug("PROMPT (%s):\n%s", prompt_type, _truncate(prompt_content, truncate_at))


def log_llm_response(
    logger: logging.Logger,
    response_type: str,
    response_content: str,
    truncate_at: int = 2000,
) -> None:
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug("LLM RESPONSE (%s):\n%s", response_type, _truncate(response_content, truncate_at))


def log_shard_outcome(logger: logging.Logger, outcome: ShardOutcome) -> None:
    """One line per shard; failures at WARNING."""
    if outcome.status == "success":
        logger.info(
            "Shard %s [%d,%d) ok: %d extraction(s), attempts=%d%s",
            outcome.shard_id[:12],
            outcome.start,
            outcome.end,
            len(outcome.extractions),
            outcome.attempts,
            " (checkpoint)" if outcome.from_checkpoint else "",
        )
        return
    failure = outcome.failure
    logger.warning(
        "Shard %s [%d,%d) failed: %s: %s",
        outcome.shard_id[:12],
        outcome.start,
        outcome.end,
        failure.kind if failure else "unknown_failure",
        _truncate(failure.message if failure else "", 300),
    )


def log_run_summary(logger: logging.Logger, bundle: EvidenceBundle) -> None:
    diagnostics = bundle.diagnostics
    completeness = diagnostics.run_completeness
    level = logging.ERROR if completeness.kind == "complete_failure" else logging.INFO
    logger.log(level, "-" * 60)
    logger.log(level, "RUN %s: %s", bundle.run_id, completeness.kind)
    logger.log(level, "  Extractions: %d (%s)", len(bundle.extractions), diagnostics.empty_result_kind)
    logger.log(
        level,
        "  Shards: %d ok / %d failed / %d from checkpoint",
        completeness.successful_shards,
        completeness.failed_shards,
        diagnostics.checkpoint_hits,
    )
    if diagnostics.budget_log.time.deadline_reached:
        logger.log(level, "  Time budget exhausted")
    logger.log(level, "-" * 60)
