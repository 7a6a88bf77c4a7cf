"""
Logging setup for traas
"""

import logging
import os
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

DEFAULT_LOG_LEVEL = os.getenv("TRAAS_LOG_LEVEL", "WARNING").upper()


def verbosity_to_level(verbose: int) -> Optional[str]:
    """Map a -v count to a level name (None keeps the default)"""
    if verbose >= 2:
        return "DEBUG"
    if verbose == 1:
        return "INFO"
    return None


def setup_logging(level: Optional[str] = None, console: Optional[Console] = None) -> None:
    """Route standard logging through rich on stderr."""
    effective_level = (level or DEFAULT_LOG_LEVEL).upper()
    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    logging.basicConfig(
        level=getattr(logging, effective_level, logging.WARNING),
        format="%(name)s: %(message)s",
        datefmt="[%X]",
        handlers=[handler],
        force=True,
    )


__all__ = ["setup_logging", "verbosity_to_level"]
