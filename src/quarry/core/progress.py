"""User-facing progress feedback for CLI operations.

Usage::

    from quarry.core.progress import percent_bar, status

    status("Index opened", style="success")  # ✓ Index opened

    with percent_bar("Reindexing") as report:
        await service.reindex_all(source, progress=report)
"""

from __future__ import annotations

import sys
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from rich.console import Console
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn

_console = Console(stderr=True)

_STYLES = {
    "success": "[green]✓[/green] ",
    "error": "[red]✗[/red] ",
    "warning": "[yellow]![/yellow] ",
    "info": "  ",
    "none": "",
}

_suppress_console_logs = threading.local()


def is_console_suppressed() -> bool:
    """Check if console logging is currently suppressed."""
    return getattr(_suppress_console_logs, "active", False)


@contextmanager
def suppress_console_logs() -> Iterator[None]:
    """Pause structlog console output while a Rich live display runs."""
    _suppress_console_logs.active = True
    try:
        yield
    finally:
        _suppress_console_logs.active = False


def _is_tty() -> bool:
    return hasattr(sys.stderr, "isatty") and sys.stderr.isatty()


def get_console() -> Console:
    return _console


def status(message: str, *, style: str = "info") -> None:
    """Print a styled status message to stderr."""
    _console.print(f"{_STYLES.get(style, '')}{message}", highlight=False)


def pluralize(count: int, singular: str, plural: str | None = None) -> str:
    if plural is None:
        plural = singular + "s"
    return f"{count} {singular if count == 1 else plural}"


@contextmanager
def percent_bar(desc: str, *, force: bool = False) -> Iterator[Callable[[int], None]]:
    """Progress bar driven by integer percentages (0-100).

    Yields a callback to pass as a progress sink. Outside a TTY (unless
    ``force``) the callback is a no-op and nothing is drawn.
    """
    if not (force or _is_tty()):
        yield lambda _percent: None
        return

    with (
        suppress_console_logs(),
        Progress(
            TextColumn("    {task.description}:"),
            BarColumn(bar_width=25, style="cyan", complete_style="cyan"),
            TaskProgressColumn(),
            console=_console,
            transient=True,
        ) as pbar,
    ):
        task_id = pbar.add_task(desc, total=100)

        def report(percent: int) -> None:
            pbar.update(task_id, completed=max(0, min(100, percent)))

        yield report
