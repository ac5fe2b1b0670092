"""Operator-facing console output (now playing, errors, tables).

Diagnostics go to loguru; this module is only for what a person running
the station reads. Rich markup is disabled because song titles routinely
contain brackets ("Song [Official Video]").
"""

from typing import Iterable, Optional, Sequence

from rich.console import Console
from rich.table import Table

_console: Optional[Console] = None


def get_console() -> Console:
    global _console
    if _console is None:
        _console = Console(highlight=False)
    return _console


def safe_print(message: str, style: Optional[str] = None) -> None:
    """Print a line verbatim, optionally styled ("bold green", "dim")."""
    get_console().print(message, style=style, markup=False)


def print_error(message: str) -> None:
    safe_print(f"❌ {message}", style="red")


def print_table(title: str, columns: Sequence[str], rows: Iterable[Sequence[str]]) -> None:
    table = Table(title=title)
    for column in columns:
        table.add_column(column)
    for row in rows:
        table.add_row(*row)
    get_console().print(table)
