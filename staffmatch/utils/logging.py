"""Logging setup for the staffmatch library logger.

Modules log through ``logging.getLogger(__name__)``; everything lands under
the ``staffmatch`` logger configured here.
"""

import logging
import sys
from typing import TextIO

from staffmatch.config.settings import get_settings

LOGGER_NAME = "staffmatch"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Name of the handler installed by configure_logging(); other handlers on
# the library logger are left alone.
HANDLER_NAME = "staffmatch-console"


def _resolve_level(level: str | int | None) -> int:
    if level is None:
        level = get_settings().log_level
    if isinstance(level, int):
        return level
    return getattr(logging, level.upper(), logging.INFO)


def _library_handler(logger: logging.Logger) -> logging.Handler | None:
    for handler in logger.handlers:
        if handler.get_name() == HANDLER_NAME:
            return handler
    return None


def configure_logging(
    level: str | int | None = None,
    *,
    stream: TextIO | None = None,
    format_string: str = LOG_FORMAT,
    date_format: str = DATE_FORMAT,
) -> logging.Logger:
    """Install (once) the console handler and set the library log level.

    Calling again only changes the level; the first call's stream and
    format stay in place.

    Args:
        level: Level name or number. Defaults to ``Settings.log_level``.
        stream: Where the handler writes. Defaults to stderr.
        format_string: Format string for log messages.
        date_format: Format string for timestamps.

    Returns:
        The ``staffmatch`` logger.
    """
    logger = logging.getLogger(LOGGER_NAME)
    log_level = _resolve_level(level)
    logger.setLevel(log_level)

    handler = _library_handler(logger)
    if handler is None:
        handler = logging.StreamHandler(stream or sys.stderr)
        handler.set_name(HANDLER_NAME)
        handler.setFormatter(logging.Formatter(format_string, datefmt=date_format))
        logger.addHandler(handler)
        # Host applications keep their own root configuration.
        logger.propagate = False
    handler.setLevel(log_level)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Return a logger under ``staffmatch``.

    Accepts a bare component name (``"cache"``) or a module ``__name__``
    that is already inside the package.
    """
    if name == LOGGER_NAME or name.startswith(f"{LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{LOGGER_NAME}.{name}")


def reset_logging() -> None:
    """Remove every handler and restore propagation (useful for testing)."""
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
