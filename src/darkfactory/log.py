"""Logging utilities with colored output via Rich."""

from __future__ import annotations

import time

from rich.console import Console
from rich.markup import escape

console = Console(highlight=False)
_err_console = Console(highlight=False, stderr=True)

_verbose = False
_started = time.monotonic()


def set_verbose(enabled: bool) -> None:
    global _verbose
    _verbose = enabled


def format_elapsed(seconds: float) -> str:
    """Format a duration as ``HH:MM:SS``."""
    total = int(seconds)
    h, rest = divmod(total, 3600)
    m, s = divmod(rest, 60)
    return f"{h:02d}:{m:02d}:{s:02d}"


def _stamp() -> str:
    return f"[dim]\\[{format_elapsed(time.monotonic() - _started)}][/dim]"


def info(msg: str) -> None:
    console.print(f"{_stamp()} [blue]\\[INFO][/blue] {escape(msg)}")


def success(msg: str) -> None:
    console.print(f"{_stamp()} [green]\\[OK][/green] {escape(msg)}")


def warn(msg: str) -> None:
    console.print(f"{_stamp()} [yellow]\\[WARN][/yellow] {escape(msg)}")


def error(msg: str) -> None:
    _err_console.print(f"{_stamp()} [red]\\[ERROR][/red] {escape(msg)}")


def debug(msg: str) -> None:
    if _verbose:
        console.print(f"{_stamp()} [dim]\\[DEBUG] {escape(msg)}[/dim]")
