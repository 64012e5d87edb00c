"""Process-wide logging setup shared by the API and the Celery worker."""

from __future__ import annotations

import logging
import sys
from typing import Optional

from convoflow.config import get_settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
ROOT_LOGGER_NAME = "convoflow"


class LoggingConfig:
    """Configure the convoflow logger hierarchy once per process."""

    _configured = False

    def __init__(self, level: Optional[str] = None) -> None:
        if LoggingConfig._configured:
            return
        settings = get_settings()
        resolved = (level or settings.log_level or "INFO").upper()

        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))

        root = logging.getLogger(ROOT_LOGGER_NAME)
        root.setLevel(resolved)
        root.handlers = [handler]
        root.propagate = False
        LoggingConfig._configured = True


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a logger under the convoflow namespace."""
    if not name:
        return logging.getLogger(ROOT_LOGGER_NAME)
    if name.startswith(ROOT_LOGGER_NAME):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
