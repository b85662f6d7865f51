"""Rich Console factory and theme for stackctl output.

Creates Console instances that render to a StringIO buffer, preserving
the ``format_result() -> str`` contract. In non-TTY environments
(tests, pipes) Rich automatically disables color codes.
"""

from __future__ import annotations

from io import StringIO

from rich.console import Console
from rich.theme import Theme

STACK_THEME = Theme(
    {
        "stack.ok": "bold green",
        "stack.error": "bold red",
        "stack.warning": "bold yellow",
        "stack.op": "bold cyan",
        "stack.key": "dim",
        "stack.project": "bold blue",
        "stack.container": "dim",
        "stack.status.running": "green",
        "stack.status.starting": "cyan",
        "stack.status.stopping": "cyan",
        "stack.status.stopped": "dim",
        "stack.status.degraded": "bold red",
        "stack.status.unknown": "yellow",
    }
)


def create_console(*, no_color: bool = False, width: int | None = None) -> Console:
    """Create a Console that renders to a StringIO buffer.

    Args:
        no_color: Disable ANSI escape codes (used in tests).
        width: Override terminal width (useful for consistent test output).
    """
    return Console(
        file=StringIO(),
        theme=STACK_THEME,
        no_color=no_color,
        highlight=False,
        width=width or 120,
    )


def get_output(console: Console) -> str:
    """Extract rendered text from a StringIO-backed Console."""
    assert isinstance(console.file, StringIO)
    return console.file.getvalue()


def style_for_status(status: str) -> str:
    """Return the Rich style name for a service status."""
    return f"stack.status.{status}" if status else ""
