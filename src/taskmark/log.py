"""Console logging via Rich.

Messages routinely contain markdown checkboxes (``[ ]``, ``[x]``), so every
message is escaped before it reaches Rich's markup parser.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path
from typing import TYPE_CHECKING

from rich.console import Console
from rich.markup import escape

if TYPE_CHECKING:
    from taskmark.tasks.codec import ParseIssue

console = Console(highlight=False)
_err_console = Console(highlight=False, stderr=True)

_verbose = False


def set_verbose(enabled: bool) -> None:
    global _verbose
    _verbose = enabled


def info(msg: str) -> None:
    console.print(f"[blue]\\[INFO][/blue] {escape(msg)}")


def success(msg: str) -> None:
    console.print(f"[green]\\[OK][/green] {escape(msg)}")


def warn(msg: str) -> None:
    console.print(f"[yellow]\\[WARN][/yellow] {escape(msg)}")


def error(msg: str) -> None:
    _err_console.print(f"[red]\\[ERROR][/red] {escape(msg)}")


def debug(msg: str) -> None:
    if _verbose:
        console.print(f"[dim]\\[DEBUG] {escape(msg)}[/dim]")


def parse_issues(path: Path, issues: Iterable["ParseIssue"]) -> None:
    """Warn once per skipped or repaired line of a hand-edited record file."""
    for issue in issues:
        warn(f"{path.name}:{issue.line_no}: {issue.reason}")
