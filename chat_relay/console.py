"""Rich console shared by the CLI and the log handler."""

from __future__ import annotations

from rich.console import Console
from rich.theme import Theme

THEME = Theme(
    {
        "info": "cyan",
        "warning": "yellow",
        "error": "bold red",
        "success": "green",
        "prompt": "bold green",
        "assistant": "white",
        "muted": "dim",
    }
)

console = Console(theme=THEME)

__all__ = ["THEME", "console"]
