"""Logging setup for the ``loopauth`` command line.

Library modules only create loggers (``logging.getLogger(__name__)``);
handlers are installed here, once, by the CLI. Records go to stderr through
a :class:`rich.logging.RichHandler` so they never mix with data on stdout.
"""

from __future__ import annotations

import logging
import sys

from rich.console import Console
from rich.logging import RichHandler

_LOGGER_NAME = "loopauth"


def configure_logging(verbose: bool = False, no_color: bool = False) -> logging.Logger:
    """Attach a stderr handler to the ``loopauth`` logger.

    Args:
        verbose: Log at ``DEBUG`` instead of ``WARNING``.
        no_color: Render records without colour.

    Returns:
        The configured package logger. Calling this again replaces the
        handler rather than adding a second one.
    """
    logger = logging.getLogger(_LOGGER_NAME)
    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)

    handler = RichHandler(
        console=Console(file=sys.stderr, stderr=True, no_color=no_color),
        show_path=verbose,
        rich_tracebacks=verbose,
    )
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    logger.propagate = False
    return logger
