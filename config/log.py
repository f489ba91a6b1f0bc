"""Logging setup shared by the CLI and scripts."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

from config.settings import get_settings


def configure_logging(level: str | None = None, console: Console | None = None) -> None:
    """Route stdlib logging through rich at the configured level."""
    level_name = (level or get_settings().log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[
            RichHandler(
                console=console or Console(stderr=True),
                show_path=False,
                rich_tracebacks=True,
            )
        ],
        force=True,
    )
