# evidex/cli.py
"""
evidex CLI -- Click commands with a themed terminal UI.

Provides the ``evidex`` console entry-point declared in pyproject.toml as
``evidex.cli:cli``:

- run:     run the engine on one document with a replay provider
- attest:  sign evidence bundles with an HMAC key
- verify:  verify bundle attestations (exit code 1 on any failure)
- hash:    print canonical payload hashes
- config:  show the effective configuration
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

import click
import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape as _esc

from . import __version__
from . import cli_theme as theme
from .config import get_config
from .core.canonical import escape_lone_surrogates
from .core.program import ProgramError
from .engine.checkpoint import CheckpointStore, FileCheckpointStore, InMemoryCheckpointStore
from .engine.retry import RetryPolicyError
from .engine.run import run_with_evidence
from .evidence.attest import attest_evidence_bundle
from .evidence.canonical import hash_evidence_bundle
from .evidence.jsonl import JsonlDecodeError, read_jsonl, write_jsonl
from .evidence.models import EvidenceBundle
from .evidence.verify import verify_evidence_bundle_attestation
from .providers.fake import FakeProvider
from .utils.logging import setup_logging

console = Console()

MAX_EXTRACTION_ROWS = 20


def _print_version(ctx: click.Context, _param: click.Parameter, value: bool) -> None:
    if not value or ctx.resilient_parsing:
        return
    theme.print_version(__version__, console)
    ctx.exit()


# ---------------------------------------------------------------------------
# File helpers
# ---------------------------------------------------------------------------


def _load_structured_file(path: Path) -> Any:
    """JSON, or YAML for ``.yaml``/``.yml`` files."""
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() in (".yaml", ".yml"):
            return yaml.safe_load(text)
        return json.loads(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise click.ClickException(f"Could not parse {path}: {exc}")


def _load_responses(path: Optional[Path]) -> dict[str, str]:
    if path is None:
        return {}
    data = _load_structured_file(path)
    if not isinstance(data, dict):
        raise click.ClickException(f"{path} must map request hashes (or 'default') to response text.")
    responses: dict[str, str] = {}
    for key, value in data.items():
        # structured replies may be stored as JSON values rather than strings
        responses[str(key)] = value if isinstance(value, str) else json.dumps(value, ensure_ascii=False)
    return responses


def _load_bundles(path: Path) -> list[EvidenceBundle]:
    try:
        if path.suffix.lower() == ".jsonl":
            return read_jsonl(path)
        data = json.loads(path.read_text(encoding="utf-8"))
        items = data if isinstance(data, list) else [data]
        return [EvidenceBundle.from_json_dict(item) for item in items]
    except (JsonlDecodeError, json.JSONDecodeError, ValidationError) as exc:
        raise click.ClickException(f"Could not read evidence bundles from {path}: {exc}")


def _write_bundles(path: Path, bundles: list[EvidenceBundle], *, append: bool = False) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix.lower() == ".jsonl":
        write_jsonl(path, bundles, append=append)
        return
    payload: Any = bundles[0].to_dict() if len(bundles) == 1 else [b.to_dict() for b in bundles]
    text = escape_lone_surrogates(json.dumps(payload, indent=2, ensure_ascii=False))
    path.write_text(text + "\n", encoding="utf-8")


def _resolve_key(key: Optional[str]) -> str:
    if key:
        return key
    secret = get_config().attestation_key
    if secret is None:
        raise click.ClickException("No attestation key. Pass --key or set EVIDEX_ATTESTATION_KEY.")
    return secret.get_secret_value()


def _print_run_summary(bundle: EvidenceBundle) -> None:
    diagnostics = bundle.diagnostics

    theme.section("Run", console, "01")
    t = theme.make_kv_table()
    t.add_row("run_id", _esc(bundle.run_id))
    t.add_row("document_id", _esc(bundle.provenance.document_id))
    t.add_row("completeness", theme.completeness_badge(diagnostics.run_completeness.kind))
    t.add_row("result", diagnostics.empty_result_kind)
    t.add_row("shards", str(bundle.shard_plan.shard_count))
    t.add_row("checkpoint_hits", str(diagnostics.checkpoint_hits))
    t.add_row("extractions", str(len(bundle.extractions)))
    console.print(t)

    if bundle.extractions:
        theme.section("Extractions", console, "02")
        t = theme.make_table()
        t.add_column("Class", style=f"bold {theme.CORAL}", no_wrap=True)
        t.add_column("Span", no_wrap=True)
        t.add_column("Quote")
        for extraction in bundle.extractions[:MAX_EXTRACTION_ROWS]:
            t.add_row(
                _esc(extraction.extraction_class),
                f"[{extraction.span.char_start}, {extraction.span.char_end})",
                _esc(escape_lone_surrogates(extraction.quote)),
            )
        console.print(t)
        hidden = len(bundle.extractions) - MAX_EXTRACTION_ROWS
        if hidden > 0:
            console.print(theme.info(f"{hidden} more extraction(s) not shown"))

    if diagnostics.failures:
        theme.section("Failures", console, "03")
        for failure in diagnostics.failures:
            console.print(theme.warn(f"{failure.shard_id[:12]} {failure.kind}: {_esc(failure.message)}"))


# ---------------------------------------------------------------------------
# Main CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--version",
    is_flag=True,
    callback=_print_version,
    expose_value=False,
    is_eager=True,
    help="Show version and exit.",
)
def cli() -> None:
    """evidex -- grounded extraction with auditable evidence bundles."""


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--document", type=click.Path(exists=True, dir_okay=False, path_type=Path), required=True, help="Plain-text document to extract from.")
@click.option("--program", type=click.Path(exists=True, dir_okay=False, path_type=Path), required=True, help="Extraction program (.json, .yaml or .yml).")
@click.option("--responses", type=click.Path(exists=True, dir_okay=False, path_type=Path), default=None, help="Replay file mapping request hashes (or 'default') to response text.")
@click.option("--run-id", type=str, default=None, help="Run id; reuse it with --checkpoint-dir to resume.")
@click.option("--model", type=str, default=None, help="Model name recorded in requests.")
@click.option("--chunk-size", type=int, default=None, help="Shard size in UTF-16 code units.")
@click.option("--overlap", type=int, default=None, help="Overlap between shards.")
@click.option("--checkpoint-dir", type=click.Path(file_okay=False, path_type=Path), default=None, help="Persist shard checkpoints to this directory.")
@click.option("--workers", type=int, default=None, help="Shards to run concurrently.")
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), default=None, help="Write the bundle (.json, or appended to .jsonl).")
@click.option("--sign", is_flag=True, default=False, help="Attest the bundle with the configured key.")
@click.option("--key", type=str, default=None, help="HMAC key for --sign (defaults to EVIDEX_ATTESTATION_KEY).")
@click.option("--key-id", type=str, default=None, help="Key id recorded in the attestation.")
@click.option("--log-level", type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False), default=None, help="Session log level.")
def run(
    document: Path,
    program: Path,
    responses: Optional[Path],
    run_id: Optional[str],
    model: Optional[str],
    chunk_size: Optional[int],
    overlap: Optional[int],
    checkpoint_dir: Optional[Path],
    workers: Optional[int],
    output: Optional[Path],
    sign: bool,
    key: Optional[str],
    key_id: Optional[str],
    log_level: Optional[str],
) -> None:
    """Run extraction over a document and emit an evidence bundle.

    \b
    Examples:
      evidex run --document note.txt --program program.yaml --responses replay.json
      evidex run --document note.txt --program program.json -o bundles.jsonl --sign
      evidex run --document note.txt --program program.json --run-id r1 --checkpoint-dir ckpt/
    """
    cfg = get_config()
    log_file = setup_logging(level=log_level)

    program_data = _load_structured_file(program)
    if not isinstance(program_data, dict):
        raise click.ClickException(f"{program} must contain a mapping.")
    document_text = document.read_text(encoding="utf-8")
    provider = FakeProvider.from_mapping(_load_responses(responses))
    store: CheckpointStore = (
        FileCheckpointStore(checkpoint_dir) if checkpoint_dir is not None else InMemoryCheckpointStore()
    )
    model_name = model or cfg.model
    theme.print_banner(__version__, console, model=model_name)

    try:
        with theme.spinner("Running shards...", console):
            bundle = run_with_evidence(
                run_id or f"run-{document.stem}",
                program_data,
                {"documentId": document.name, "text": document_text},
                provider,
                model_name,
                chunk_size if chunk_size is not None else cfg.chunk_size,
                overlap if overlap is not None else cfg.overlap,
                checkpoint_store=store,
                retry_policy=cfg.retry_policy(),
                trim_trailing_whitespace_per_line=cfg.trim_trailing_whitespace,
                time_budget_ms=cfg.time_budget_ms,
                repair_budgets=cfg.repair_budgets(),
                multi_pass_max_passes=cfg.multi_pass_max_passes,
                structured_mode=cfg.structured_mode,
                max_schema_chars=cfg.max_schema_chars,
                max_workers=workers if workers is not None else cfg.max_workers,
            )
    except (ProgramError, RetryPolicyError, ValueError) as exc:
        raise click.ClickException(str(exc))

    if sign:
        bundle = attest_evidence_bundle(bundle, _resolve_key(key), key_id=key_id or cfg.attestation_key_id)

    _print_run_summary(bundle)

    if output is not None:
        _write_bundles(output, [bundle], append=True)
        console.print(theme.ok(f"Bundle written to {_esc(str(output))}"))
    else:
        console.print(theme.info(f"payload hash {hash_evidence_bundle(bundle)}"))
    console.print(theme.info(f"Log: {log_file}"))
    console.print()


# ---------------------------------------------------------------------------
# attest / verify / hash
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--bundle", "bundle_path", type=click.Path(exists=True, dir_okay=False, path_type=Path), required=True, help="Bundle file (.json or .jsonl).")
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), required=True, help="Where to write the attested bundle(s).")
@click.option("--key", type=str, default=None, help="HMAC key (defaults to EVIDEX_ATTESTATION_KEY).")
@click.option("--key-id", type=str, default=None, help="Key id recorded in the attestation.")
def attest(bundle_path: Path, output: Path, key: Optional[str], key_id: Optional[str]) -> None:
    """Sign every bundle in a file.

    \b
    Examples:
      evidex attest --bundle run.json -o run.signed.json --key-id k1
      EVIDEX_ATTESTATION_KEY=secret evidex attest --bundle runs.jsonl -o signed.jsonl
    """
    secret = _resolve_key(key)
    key_id = key_id or get_config().attestation_key_id
    signed = [attest_evidence_bundle(bundle, secret, key_id=key_id) for bundle in _load_bundles(bundle_path)]
    _write_bundles(output, signed)
    console.print(theme.ok(f"Attested {len(signed)} bundle(s) -> {_esc(str(output))}"))


@cli.command()
@click.option("--bundle", "bundle_path", type=click.Path(exists=True, dir_okay=False, path_type=Path), required=True, help="Bundle file (.json or .jsonl).")
@click.option("--key", type=str, default=None, help="HMAC key (defaults to EVIDEX_ATTESTATION_KEY).")
@click.pass_context
def verify(ctx: click.Context, bundle_path: Path, key: Optional[str]) -> None:
    """Verify bundle attestations; exits with status 1 if any fail.

    \b
    Examples:
      evidex verify --bundle run.signed.json
      evidex verify --bundle signed.jsonl --key secret
    """
    secret = _resolve_key(key)
    bundles = _load_bundles(bundle_path)
    failures = 0
    t = theme.make_table()
    t.add_column("#", justify="right")
    t.add_column("Run", no_wrap=True)
    t.add_column("Status")
    t.add_column("Key id")
    t.add_column("Payload hash", style=theme.MUTED)
    for index, bundle in enumerate(bundles, start=1):
        result = verify_evidence_bundle_attestation(bundle, secret)
        if not result.valid:
            failures += 1
        t.add_row(
            str(index),
            _esc(bundle.run_id),
            theme.badge("VALID", "ok") if result.valid else theme.badge(result.reason or "invalid", "error"),
            _esc(result.key_id or "-"),
            (result.payload_hash or "-")[:16],
        )
    console.print(t)

    if failures:
        console.print(theme.err(f"{failures} of {len(bundles)} bundle(s) failed verification"))
        ctx.exit(1)
    console.print(theme.ok(f"{len(bundles)} bundle(s) verified"))


@cli.command(name="hash")
@click.option("--bundle", "bundle_path", type=click.Path(exists=True, dir_okay=False, path_type=Path), required=True, help="Bundle file (.json or .jsonl).")
def hash_cmd(bundle_path: Path) -> None:
    """Print the canonical payload hash of every bundle (one per line)."""
    for bundle in _load_bundles(bundle_path):
        click.echo(f"{hash_evidence_bundle(bundle)}  {bundle.run_id}")


# ---------------------------------------------------------------------------
# config
# ---------------------------------------------------------------------------


@cli.command()
def config() -> None:
    """Show the effective configuration (flags > EVIDEX_* env > .env > defaults)."""
    cfg = get_config()

    theme.section("Engine", console, "01")
    t = theme.make_kv_table()
    t.add_row("model", cfg.model)
    t.add_row("chunk_size", str(cfg.chunk_size))
    t.add_row("overlap", str(cfg.overlap))
    t.add_row("trim_trailing_whitespace", str(cfg.trim_trailing_whitespace))
    t.add_row("structured_mode", theme.badge(cfg.structured_mode.upper()))
    t.add_row("max_workers", str(cfg.max_workers))
    console.print(t)

    theme.section("Retries & Budgets", console, "02")
    t = theme.make_kv_table()
    policy = cfg.retry_policy()
    t.add_row("retry", f"{policy.attempts} attempt(s), {policy.base_delay_ms}-{policy.max_delay_ms}ms, jitter {policy.jitter_ratio}")
    t.add_row("multi_pass_max_passes", str(cfg.multi_pass_max_passes))
    t.add_row("max_schema_chars", str(cfg.max_schema_chars))
    t.add_row("repair_max_candidate_chars", str(cfg.repair_max_candidate_chars or "[dim]unbounded[/dim]"))
    t.add_row("repair_max_repair_chars", str(cfg.repair_max_repair_chars or "[dim]unbounded[/dim]"))
    t.add_row("time_budget_ms", str(cfg.time_budget_ms if cfg.time_budget_ms is not None else "[dim]none[/dim]"))
    console.print(t)

    theme.section("Attestation", console, "03")
    t = theme.make_kv_table()
    t.add_row("attestation_key_id", cfg.attestation_key_id or "[dim]not set[/dim]")
    t.add_row("attestation_key", "***" if cfg.attestation_key is not None else "[dim]not set[/dim]")
    console.print(t)

    theme.section("Paths", console, "04")
    t = theme.make_kv_table()
    t.add_row("home_dir", str(cfg.home_dir))
    t.add_row("checkpoint_dir", str(cfg.checkpoint_dir))
    t.add_row("log_dir", str(cfg.log_dir))
    console.print(t)
    console.print()
