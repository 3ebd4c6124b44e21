"""Rich Console factory and theme for pipectl output.

Creates Console instances that render to a StringIO buffer, preserving
the ``format_result() -> str`` contract. In non-TTY environments
(tests, pipes) Rich automatically disables color codes.
"""

from __future__ import annotations

from io import StringIO

from rich.console import Console
from rich.theme import Theme

from pipectl.domain.types import StepStatus

PIPE_THEME = Theme(
    {
        "pipe.ok": "bold green",
        "pipe.error": "bold red",
        "pipe.warning": "bold yellow",
        "pipe.op": "bold cyan",
        "pipe.key": "dim",
        "pipe.hint": "italic",
        "pipe.step": "bold",
        "pipe.status.passed": "green",
        "pipe.status.warning": "yellow",
        "pipe.status.failed": "red",
    }
)

_STATUS_STYLES: dict[str, str] = {
    StepStatus.PASSED: "pipe.status.passed",
    StepStatus.WARNING: "pipe.status.warning",
    StepStatus.FAILED: "pipe.status.failed",
}

_STATUS_ICONS: dict[str, str] = {
    StepStatus.PASSED: "✔",
    StepStatus.WARNING: "!",
    StepStatus.FAILED: "✘",
}


def create_console(*, no_color: bool = False, width: int | None = None) -> Console:
    """Create a Console that renders to a StringIO buffer.

    Args:
        no_color: Disable ANSI escape codes (used in tests).
        width: Override terminal width (useful for consistent test output).
    """
    return Console(
        file=StringIO(),
        theme=PIPE_THEME,
        no_color=no_color,
        highlight=False,
        width=width or 120,
    )


def get_output(console: Console) -> str:
    """Extract rendered text from a StringIO-backed Console."""
    assert isinstance(console.file, StringIO)
    return console.file.getvalue()


def style_for_status(status: str) -> str:
    return _STATUS_STYLES.get(status, "")


def icon_for_status(status: str) -> str:
    return _STATUS_ICONS.get(status, "?")
