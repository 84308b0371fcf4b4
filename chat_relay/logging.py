"""Logging helpers."""

from __future__ import annotations

import logging
from typing import Optional

from rich.logging import RichHandler

from .console import console


def configure_logging(level: str = "INFO") -> None:
    """Install a Rich handler on the root logger."""

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=False, markup=False)],
        force=True,
    )


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name or "chat_relay")
