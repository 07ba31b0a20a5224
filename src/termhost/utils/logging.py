"""Logging setup for the termhost server and CLI."""

from __future__ import annotations

import logging
import sys

from termhost.config.settings import LoggingConfig

# Per-request access lines from uvicorn drown out session events
_NOISY_LOGGERS = ("uvicorn.access",)


def setup_logging(config: LoggingConfig | None = None) -> None:
    """Attach handlers to the 'termhost' logger.

    Safe to call more than once: handlers from an earlier call are
    replaced rather than stacked.
    """
    config = config or LoggingConfig()
    level = getattr(logging, config.level.upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if config.file:
        handlers.append(logging.FileHandler(config.file))

    formatter = logging.Formatter(config.format)
    app_logger = logging.getLogger("termhost")
    for old in list(app_logger.handlers):
        app_logger.removeHandler(old)
        old.close()
    for handler in handlers:
        handler.setFormatter(formatter)
        app_logger.addHandler(handler)
    app_logger.setLevel(level)

    if level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    app_logger.debug("Logging initialized at %s level", config.level)
