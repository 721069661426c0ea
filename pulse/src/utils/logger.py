"""
Pulse - Logging
================
One stdout handler and one line format for every Pulse module, plus a
switch to keep the Slack and HTTP client libraries' per-request chatter
out of the bot's log.

Level follows ``settings.ENV``: ``dev`` logs DEBUG, ``prod`` logs WARNING.

Usage:
    from pulse.src.utils.logger import get_logger
    logger = get_logger(__name__)
"""

import logging
import sys

from pulse.config.settings import settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_ENV_LEVELS = {"dev": logging.DEBUG, "prod": logging.WARNING}

# Libraries that log every request at INFO/DEBUG.
NOISY_LOGGERS = ("httpx", "httpcore", "slack_bolt", "slack_sdk", "aiohttp.access")


def default_level() -> int:
    return _ENV_LEVELS.get(settings.ENV, logging.INFO)


def _stdout_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    return handler


def get_logger(name: str, level: int | None = None) -> logging.Logger:
    """
    Return the named logger, attaching the Pulse handler on first use.

    Args:
        name:  Usually ``__name__``.
        level: Override for the ``settings.ENV`` default.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    resolved = default_level() if level is None else level
    logger.setLevel(resolved)
    logger.addHandler(_stdout_handler(resolved))
    logger.propagate = False
    return logger


def quiet_third_party(level: int = logging.WARNING) -> None:
    """Route ``NOISY_LOGGERS`` through the Pulse handler, capped at *level*."""
    floor = max(level, default_level())
    for name in NOISY_LOGGERS:
        get_logger(name, floor)
