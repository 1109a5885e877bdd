"""
Logging for the freight baseline engine.

All modules log under the ``freight_baseline`` namespace through
``get_logger("<module>")``.  ``configure_logging`` attaches the console (and
optional file) handler exactly once; later calls only adjust the level, so
several pipelines created in one process share a single handler set.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

ROOT_LOGGER_NAME = "freight_baseline"

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-30s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_handlers: list[logging.Handler] = []


def configure_logging(
    level: int = logging.INFO,
    log_file: Optional[str] = None,
) -> logging.Logger:
    """Configure the ``freight_baseline`` logger tree.

    Parameters
    ----------
    level:
        Minimum severity emitted by the package loggers.
    log_file:
        Optional path; when given on the first call a ``FileHandler`` is
        added next to the stdout handler.
    """
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level)

    if _handlers:
        for handler in _handlers:
            handler.setLevel(level)
        return root

    root.propagate = False
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    _handlers.append(console)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        _handlers.append(file_handler)

    for handler in _handlers:
        handler.setLevel(level)
        root.addHandler(handler)
    return root


def get_logger(name: str) -> logging.Logger:
    """Return ``freight_baseline.<name>``."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
