# evidex/cli_theme.py
"""Terminal theme for the evidex CLI.

Coral & greige palette:
  - Numbered section headers ("01 · SECTION NAME")
  - Rounded tables with greige borders
  - Status badges with reverse styling
  - Works in both light and dark terminal modes
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Generator

from rich import box
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.style import Style
from rich.table import Table
from rich.text import Text

# ── Brand ─────────────────────────────────────────────────────────

BRAND = "E V I D E X"
TAGLINE = "Grounded extraction with auditable evidence bundles"

# ── Palette ───────────────────────────────────────────────────────

CORAL = "#E87461"
GREIGE = "#B5A89A"
MUTED = "dim"

RULE_WIDTH = len(TAGLINE)


# ── Banner ────────────────────────────────────────────────────────


def print_banner(version: str, console: Console, model: str = "") -> None:
    console.print(f"\n  [bold {CORAL}]{BRAND}[/bold {CORAL}]")
    console.print(f"  [{GREIGE}]{TAGLINE}[/{GREIGE}]")
    console.print(f"  [{MUTED}]v{version}[/{MUTED}]")
    if model:
        console.print(f"  [{GREIGE}]{'─' * RULE_WIDTH}[/{GREIGE}]")
        console.print(
            f"  [reverse {CORAL}] model [/reverse {CORAL}] [{MUTED}]▸[/{MUTED}] [{CORAL}]{model}[/{CORAL}]"
        )
    console.print()


def print_version(version: str, console: Console) -> None:
    """Print a compact branded version line."""
    t = Text()
    t.append(BRAND, style=f"bold {CORAL}")
    t.append(f"  v{version}", style=MUTED)
    console.print(t)


# ── Section headers ──────────────────────────────────────────────


def section(title: str, console: Console, number: str | None = None) -> None:
    """Print a numbered section header with a greige rule."""
    console.print()
    t = Text()
    if number:
        t.append(f"  {number}", style=f"bold {CORAL}")
        t.append(" · ", style=MUTED)
    else:
        t.append("  ")
    t.append(title.upper(), style="bold")
    console.print(t)
    console.print(f"  {'─' * RULE_WIDTH}", style=GREIGE)


# ── Tables ───────────────────────────────────────────────────────


def make_table(title: str | None = None, **kwargs: object) -> Table:
    return Table(
        title=title,
        box=box.ROUNDED,
        border_style=GREIGE,
        title_style=f"bold {CORAL}",
        header_style="bold",
        padding=(0, 1),
        **kwargs,
    )


def make_kv_table() -> Table:
    """Headerless two-column key–value table."""
    t = make_table(show_header=False)
    t.add_column("Key", style=f"bold {CORAL}", no_wrap=True)
    t.add_column("Value")
    return t


# ── Inline badges ───────────────────────────────────────────────


def badge(label: str, variant: str = "default") -> str:
    """Return Rich markup for a filled status badge."""
    colors = {
        "default": CORAL,
        "ok": "green",
        "warn": "yellow",
        "error": "red",
    }
    c = colors.get(variant, CORAL)
    return f"[reverse {c}] {label} [/reverse {c}]"


def completeness_badge(kind: str) -> str:
    variant = {
        "complete_success": "ok",
        "partial_success": "warn",
        "complete_failure": "error",
    }.get(kind, "default")
    return badge(kind.upper().replace("_", " "), variant)


# ── Status lines ─────────────────────────────────────────────────


def info(msg: str) -> str:
    return f"  [{CORAL}]›[/{CORAL}] [{MUTED}]{msg}[/{MUTED}]"


def ok(msg: str) -> str:
    return f"  [bold green]✓[/bold green] {msg}"


def warn(msg: str) -> str:
    return f"  [bold yellow]![/bold yellow] [yellow]{msg}[/yellow]"


def err(msg: str) -> str:
    return f"  [bold red]✗[/bold red] {msg}"


# ── Progress ────────────────────────────────────────────────────


@contextmanager
def spinner(label: str, console: Console) -> Generator[None, None, None]:
    """Coral dots spinner for indeterminate operations (provider calls)."""
    p = Progress(
        TextColumn(" "),
        SpinnerColumn("dots", style=Style(color=CORAL)),
        TextColumn(f"[{MUTED}]{label}[/{MUTED}]"),
        console=console,
        transient=True,
    )
    with p:
        p.add_task(label, total=None)
        yield
