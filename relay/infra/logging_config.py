"""Logging setup shared by the relay process and its tests."""

from __future__ import annotations

import logging
import sys
from typing import Optional

ROOT_LOGGER = "relay"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%H:%M:%S"

# Third-party loggers that are chatty at INFO (one line per poll or frame)
NOISY_LOGGERS = ("httpx", "httpcore", "telegram", "websockets")


class LoggingConfig:
    """Configure the root logger once: console handler, level from settings."""

    _configured = False

    def __init__(self, level: Optional[str] = None) -> None:
        if level is None:
            from relay.config import get_settings

            level = get_settings().log_level
        self.level = logging.getLevelName(level.upper())
        if not isinstance(self.level, int):
            self.level = logging.INFO
        self._configure()

    def _configure(self) -> None:
        root = logging.getLogger()
        root.setLevel(self.level)
        if not LoggingConfig._configured:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
            root.addHandler(handler)
            LoggingConfig._configured = True
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(max(self.level, logging.WARNING))


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Logger under the ``relay`` namespace, e.g. ``get_logger("connection")``."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}" if name else ROOT_LOGGER)
