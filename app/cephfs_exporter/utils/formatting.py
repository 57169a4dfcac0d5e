"""Rich console formatting utilities.

Provides consistent formatting for CLI output using Rich.
"""

import sys

from rich.console import Console
from rich.table import Table
from rich.theme import Theme

_THEME = Theme(
    {
        "text": "#ffffff",
        "muted": "#b2bec3",
        "header": "bold #69B9A1",
        "border": "#29526d",
        "success": "#03b971",
        "warning": "#f5b332",
        "error": "bold #f53263",
        "info": "#0ec1c8",
        "metric": "#69B9A1",
        "path": "bold #ffffff",
    }
)


def _detect_color_system() -> str | None:
    """Detect the best color system for the current terminal.

    Returns "truecolor" for interactive terminals to enable full hex color support,
    None otherwise to let Rich auto-detect.
    """
    if sys.stdout.isatty():
        return "truecolor"
    return None


# Shared console instances
console = Console(theme=_THEME, color_system=_detect_color_system())
err_console = Console(theme=_THEME, stderr=True, color_system=_detect_color_system())


def create_sample_table(title: str = "Directory Samples") -> Table:
    """Create a pre-configured table for displaying metric samples.

    Args:
        title: Table title.

    Returns:
        Rich Table configured for sample display.
    """
    table = Table(
        title=title,
        show_header=True,
        header_style="header",
        border_style="border",
        row_styles=["", "on grey7"],
    )
    table.add_column("Path", style="path", no_wrap=True)
    table.add_column("Org", style="muted")
    table.add_column("User", style="muted")
    table.add_column("Metric", style="metric")
    table.add_column("Value", style="info", justify="right")
    return table


def format_bytes(size_bytes: float | None) -> str:
    """Format byte count as human-readable string."""
    if not size_bytes:
        return "0 B"
    size = float(size_bytes)
    for unit in ("B", "KB", "MB", "GB", "TB"):
        if abs(size) < 1024:
            return f"{size:.1f} {unit}" if unit != "B" else f"{int(size)} B"
        size /= 1024
    return f"{size:.1f} PB"


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[info]{message}[/]")


def print_warning(message: str) -> None:
    """Print a warning message."""
    err_console.print(f"[warning]Warning:[/] {message}")


def print_error(message: str) -> None:
    """Print an error message."""
    err_console.print(f"[error]Error:[/] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[success]{message}[/]")
