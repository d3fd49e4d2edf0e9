"""Logging configuration and utilities.

Library modules only ask for loggers; handlers are attached by the embedding
application through ``setup_logging``.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from hop_tracker.core.config import LoggingSettings

NAMESPACE = "hop_tracker"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Marks handlers installed here so a repeated setup replaces only its own
_OWNED = "_hop_tracker_handler"


def _owned(handler: logging.Handler) -> logging.Handler:
    setattr(handler, _OWNED, True)
    return handler


def setup_logging(
    level: str | None = None,
    log_file: str | None = None,
    settings: LoggingSettings | None = None,
) -> logging.Logger:
    """Configure the package logger.

    Explicit arguments win over ``settings``; with neither, INFO to stdout.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to an additional log file
        settings: Logging section of the application settings

    Returns:
        The configured package logger
    """
    if settings is not None:
        level = level or settings.level
        log_file = log_file or settings.file
    log_level = getattr(logging, (level or "INFO").upper(), logging.INFO)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    package_logger = logging.getLogger(NAMESPACE)
    package_logger.setLevel(log_level)
    for handler in list(package_logger.handlers):
        if getattr(handler, _OWNED, False):
            package_logger.removeHandler(handler)
            handler.close()

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))

    for handler in handlers:
        handler.setLevel(log_level)
        handler.setFormatter(formatter)
        package_logger.addHandler(_owned(handler))

    return package_logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the package namespace.

    Args:
        name: Module name (typically __name__)
    """
    if not name.startswith(NAMESPACE):
        name = f"{NAMESPACE}.{name}"

    return logging.getLogger(name)
