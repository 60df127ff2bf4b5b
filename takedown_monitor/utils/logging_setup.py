"""Console logging setup."""

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler


def setup_logging(level: Optional[str] = None, console: Optional[Console] = None) -> None:
    """
    Route all log records through a rich handler.

    Args:
        level: Log level name (defaults to ``config.LOG_LEVEL``)
        console: Console to write to (stderr by default)
    """
    if level is None:
        from takedown_monitor.config import config

        level = config.LOG_LEVEL

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[handler],
        force=True,
    )

    # Request-level chatter from HTTP clients
    for noisy in ("httpx", "httpcore", "openai"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
