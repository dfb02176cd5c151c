"""
Console logging for the flow compiler.

Every module logs through a named logger that writes colored, pipe-separated
records to stdout. The default level comes from the ``LOG_LEVEL`` environment
variable so compile traces can be switched to DEBUG without code changes.

Usage:
    from shared.logger import get_logger

    logger = get_logger(__name__)
    logger.info("Compiled flow %s", flow_id)
"""

import copy
import logging
import os
import sys

_loggers = {}

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class ColoredFormatter(logging.Formatter):
    """Formatter that colors the level name of console records"""

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
    }
    RESET = '\033[0m'

    def format(self, record):
        color = self.COLORS.get(record.levelname)
        if color is None:
            return super().format(record)
        # Other handlers may share the record; color a copy only.
        colored = copy.copy(record)
        colored.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(colored)


def _default_level() -> int:
    name = os.getenv("LOG_LEVEL", "INFO").upper()
    return logging.getLevelName(name) if isinstance(logging.getLevelName(name), int) else logging.INFO


def get_logger(name: str, level: int | None = None) -> logging.Logger:
    """
    Get a cached logger that writes colored records to stdout.

    Args:
        name: Logger name (typically __name__)
        level: Explicit level; defaults to ``LOG_LEVEL`` or INFO

    Returns:
        Configured logger instance
    """
    if name in _loggers:
        return _loggers[name]

    effective = level if level is not None else _default_level()

    logger = logging.getLogger(name)
    logger.setLevel(effective)
    logger.propagate = False
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(effective)
    console_handler.setFormatter(ColoredFormatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(console_handler)

    _loggers[name] = logger
    return logger
