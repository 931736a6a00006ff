"""Console output shared by the CLI commands.

Status messages often echo user ids and queries, so they are printed with
markup disabled. Table cells holding user text go through ``cell()``.
"""

from datetime import datetime

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ember.memory.types import MemoryEvent

console = Console()

EVENT_STYLES = {
    MemoryEvent.ADD: "green",
    MemoryEvent.UPDATE: "yellow",
    MemoryEvent.DELETE: "red",
    MemoryEvent.NONE: "dim",
}


def _say(msg: str, style: str) -> None:
    console.print(msg, style=style, markup=False, highlight=False)


def error(msg: str) -> None:
    _say(msg, "red")


def warning(msg: str) -> None:
    _say(msg, "yellow")


def success(msg: str) -> None:
    _say(msg, "green")


def dim(msg: str) -> None:
    _say(msg, "dim")


def create_table(title: str, columns: list[tuple[str, str | dict]]) -> Table:
    """Build a titled table from ``(name, style)`` or ``(name, column kwargs)``."""
    table = Table(title=title)
    for name, spec in columns:
        kwargs = spec if isinstance(spec, dict) else {"style": spec}
        table.add_column(name, **kwargs)
    return table


def confirm_or_cancel(prompt: str, force: bool) -> bool:
    """Ask before a destructive action unless ``force`` is set."""
    if force or typer.confirm(prompt):
        return True
    dim("Cancelled")
    return False


def truncate(text: str, width: int = 60) -> str:
    flat = " ".join(text.splitlines())
    return f"{flat[:width]}..." if len(flat) > width else flat


def cell(text: str | None, width: int = 60) -> str:
    """User-provided text for a table cell: one line, escaped, ``-`` if empty."""
    if not text:
        return "-"
    return escape(truncate(text, width))


def styled_event(event: MemoryEvent) -> str:
    style = EVENT_STYLES[event]
    return f"[{style}]{event.value}[/{style}]"


def format_time(value: datetime | None, *, seconds: bool = False) -> str:
    if value is None:
        return "-"
    return value.strftime("%Y-%m-%d %H:%M:%S" if seconds else "%Y-%m-%d %H:%M")
