"""Logging configuration for ETF Frontier.

Every module logger lives under the ``etf_frontier`` namespace, so
``setup_logger("allocation")`` returns ``etf_frontier.allocation``.
"""

import logging
import sys

from etf_frontier.config import log_level

ROOT_LOGGER = "etf_frontier"


def _qualified(name: str) -> str:
    if name == ROOT_LOGGER or name.startswith(ROOT_LOGGER + "."):
        return name
    return f"{ROOT_LOGGER}.{name}"


def _to_level(level: str | None) -> int:
    return getattr(logging, (level or log_level()).upper(), logging.INFO)


def setup_logger(name: str = ROOT_LOGGER, level: str | None = None) -> logging.Logger:
    """Create and configure a logger.

    The level defaults to ETF_FRONTIER_LOG_LEVEL, then ``app.log_level``.
    """
    logger = logging.getLogger(_qualified(name))
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        fmt = logging.Formatter(
            "%(asctime)s | %(name)-28s | %(levelname)-7s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(fmt)
        logger.addHandler(handler)
    logger.setLevel(_to_level(level))
    return logger


def set_level(level: str) -> None:
    """Apply *level* to every etf_frontier logger created so far."""
    value = _to_level(level)
    for name, obj in logging.Logger.manager.loggerDict.items():
        if isinstance(obj, logging.Logger) and name.startswith(ROOT_LOGGER):
            obj.setLevel(value)
