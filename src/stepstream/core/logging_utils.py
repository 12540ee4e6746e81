"""Logging setup: stdlib logging routed through a rich handler."""

import logging
import os

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "stepstream"

_CONFIGURED = False


def setup_logging(level: str | None = None, console: Console | None = None) -> None:
    """Install a RichHandler on the ``stepstream`` logger once.

    ``STEPSTREAM_LOG_LEVEL`` wins over ``level``; unknown names fall back to INFO.
    """
    global _CONFIGURED
    if _CONFIGURED:
        return

    level_name = (os.environ.get("STEPSTREAM_LOG_LEVEL") or level or "INFO").upper()
    resolved = getattr(logging, level_name, None)
    if not isinstance(resolved, int):
        resolved = logging.INFO

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(name)s %(message)s"))

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(resolved)
    logger.addHandler(handler)
    _CONFIGURED = True
