"""Logging setup for bandwatch.

Modules log through ``logging.getLogger(__name__)``; the CLI calls
``setup_logging`` once to route records through rich.
"""

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

LOG_FORMAT = "%(message)s"
DATE_FORMAT = "[%Y-%m-%d %H:%M:%S]"


def setup_logging(level: str = "INFO", console: Optional[Console] = None) -> None:
    """Configure the ``bandwatch`` logger hierarchy.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR).
        console: Optional rich console to log to (defaults to stderr).
    """
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        raise ValueError(f"Unknown log level: {level}")

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
        log_time_format=DATE_FORMAT,
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    logger = logging.getLogger("bandwatch")
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(numeric)
    logger.propagate = False
