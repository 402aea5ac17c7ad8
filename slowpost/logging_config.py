"""Logging configuration for slow-post.

The library logs through the ``slowpost`` logger and is silent by default
(NullHandler). The command line tool calls ``enable_console_logging`` which
prints one line per event to stdout:

    [19.10.2026 14:03:07] Client #3: Connected! Body size is 12040
"""
import logging
import sys

DEFAULT_FORMAT = "[%(asctime)s] %(message)s"
DEFAULT_DATE_FORMAT = "%d.%m.%Y %H:%M:%S"

LOGGER_NAME = "slowpost"


def _get_level(level):
    """Convert a level string or int to a logging level constant."""
    if isinstance(level, int):
        return level
    return getattr(logging, level.upper(), logging.INFO)


def _get_logger():
    return logging.getLogger(LOGGER_NAME)


def enable_console_logging(level="INFO", stream=None,
                           format=DEFAULT_FORMAT, date_format=DEFAULT_DATE_FORMAT):
    """Enable console logging (stdout by default).

    Args:
        level: Log level name or int.
        stream: Output stream, defaults to sys.stdout.
        format: Log message format string.
        date_format: Date format string for %(asctime)s.

    Returns:
        The created StreamHandler.
    """
    disable_logging()
    logger = _get_logger()
    logger.setLevel(_get_level(level))

    handler = logging.StreamHandler(stream if stream is not None else sys.stdout)
    handler.setLevel(_get_level(level))
    handler.setFormatter(logging.Formatter(format, date_format))

    logger.addHandler(handler)
    return handler


def disable_logging():
    """Remove all non-null handlers from the slow-post logger."""
    logger = _get_logger()
    for handler in logger.handlers[:]:
        if not isinstance(handler, logging.NullHandler):
            logger.removeHandler(handler)
            handler.close()


class ClientLogger(logging.LoggerAdapter):
    """Prefixes every message with the client's display name."""

    def __init__(self, name, logger=None):
        super().__init__(logger or logging.getLogger(f"{LOGGER_NAME}.client"), {"client": name})

    def process(self, msg, kwargs):
        return f"{self.extra['client']}: {msg}", kwargs
