"""Process-wide logging setup for the coinsight CLI and API."""

from __future__ import annotations

import logging
import os

LOG_LEVEL_ENV = "COINSIGHT_LOG_LEVEL"
LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
_NOISY_LOGGERS: tuple[str, ...] = ("matplotlib", "urllib3", "httpx", "httpcore")


def resolve_log_level(level: str | None = None) -> int:
    """
    Resolve a level name, falling back to ``COINSIGHT_LOG_LEVEL`` and then ``INFO``.

    Raises:
        ValueError: If the name is not a standard logging level.
    """
    name = (level or os.getenv(LOG_LEVEL_ENV) or "INFO").strip().upper()
    resolved = logging.getLevelName(name)
    if not isinstance(resolved, int):
        raise ValueError(f"Invalid logging level: {name}")
    return resolved


def configure_logging(level: str | None = None) -> None:
    """
    Configure root logging once per entrypoint invocation.

    Args:
        level: Level name such as ``DEBUG``; defaults to ``COINSIGHT_LOG_LEVEL``.
    """
    logging.basicConfig(
        level=resolve_log_level(level),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%dT%H:%M:%S%z",
        force=True,
    )
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
