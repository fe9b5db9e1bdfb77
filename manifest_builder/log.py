"""Logging setup for the command-line interface.

Library modules only create loggers; a handler is installed here, once,
by the CLI entry point.
"""

import logging

from rich.console import Console
from rich.logging import RichHandler

LOG_FORMAT = "%(message)s"
PACKAGE_LOGGER = "manifest_builder"


def configure_logging(level: str = "WARNING", console: Console | None = None) -> logging.Logger:
    """Install a rich log handler on the package logger.

    Calling it again replaces the handler installed by the previous call.

    Args:
        level: Logging level name.
        console: Console to render to (defaults to stderr).

    Returns:
        The configured package logger.
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="[%X]"))
    logger.addHandler(handler)
    logger.setLevel(level)
    return logger


__all__ = ["configure_logging"]
