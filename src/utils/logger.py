import logging
import os
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

DEFAULT_LOGGER_NAME = "storefront"
NAME_COLUMN_WIDTH = 18

# log output goes to stderr
_console = Console(stderr=True)


class CenteredFormatter(logging.Formatter):
    """Centers the logger name in a column as wide as the longest name seen so far."""

    longest_name_length = NAME_COLUMN_WIDTH

    def __init__(self, fmt=None, datefmt=None, style="%", initial_width=NAME_COLUMN_WIDTH):
        super().__init__(fmt, datefmt, style)
        CenteredFormatter.longest_name_length = max(CenteredFormatter.longest_name_length, initial_width)

    def format(self, record):
        width = CenteredFormatter.longest_name_length = max(
            CenteredFormatter.longest_name_length, len(record.name)
        )
        # other handlers still see the raw logger name
        centered = logging.makeLogRecord(record.__dict__)
        centered.name = record.name.center(width)
        return super().format(centered)


def log_level_from_env() -> int:
    """
    STOREFRONT_LOG_LEVEL (a level name such as WARNING) wins; otherwise a set
    DEBUG variable turns on debug output and everything else logs at INFO.
    """
    named = os.getenv("STOREFRONT_LOG_LEVEL")
    if named:
        level = logging.getLevelName(named.strip().upper())
        if isinstance(level, int):
            return level
    return logging.DEBUG if os.getenv("DEBUG") else logging.INFO


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Return the named logger, attaching a RichHandler on first use.

    Loggers do not propagate, so each module logger prints exactly once.
    """
    logger = logging.getLogger(name or DEFAULT_LOGGER_NAME)
    level = log_level_from_env()
    logger.setLevel(level)

    if not logger.handlers:
        handler = RichHandler(
            console=_console,
            show_time=True,
            show_level=True,
            show_path=False,
            rich_tracebacks=True,
            log_time_format="[%X]",
        )
        handler.setFormatter(CenteredFormatter("[%(name)s]  %(message)s"))
        handler.setLevel(level)
        logger.addHandler(handler)
        logger.propagate = False

    return logger
