"""Logging helpers."""

from __future__ import annotations

import logging
from typing import Optional, Union

_LOGGING_CONFIGURED = False
_FORMAT = "[%(asctime)s] %(levelname)s %(name)s - %(message)s"


def configure_logging(level: Union[int, str] = logging.WARNING) -> None:
    """Install the root handler once; later calls only adjust the level."""
    global _LOGGING_CONFIGURED
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.WARNING
    if not _LOGGING_CONFIGURED:
        logging.basicConfig(level=level, format=_FORMAT)
        _LOGGING_CONFIGURED = True
    logging.getLogger().setLevel(level)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    if not _LOGGING_CONFIGURED:
        configure_logging()
    return logging.getLogger(name)
