"""Logging setup for the command line."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

PACKAGE_LOGGER = "vitalsguard"


def configure_logging(console: Console, verbose: bool = False) -> None:
    """Send vitalsguard log records to console through a RichHandler.

    INFO by default, DEBUG with verbose. Only the package logger is
    configured so third-party libraries keep their own levels.
    """
    level = logging.DEBUG if verbose else logging.INFO
    handler = RichHandler(console=console, rich_tracebacks=True, show_path=verbose)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))

    logger = logging.getLogger(PACKAGE_LOGGER)
    for existing in list(logger.handlers):
        if isinstance(existing, RichHandler):
            logger.removeHandler(existing)
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
