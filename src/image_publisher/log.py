"""Logging configuration for the CLI.

stdout carries the JSON response, so all log output goes to stderr.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional, TextIO

LOGGER_NAME = "image_publisher"
LOG_FORMAT = "%(levelname)s %(message)s"


def configure_logging(debug: bool = False, stream: Optional[TextIO] = None) -> logging.Logger:
    """Configures and returns the package logger. Safe to call more than once."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG if debug else logging.INFO)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    return logger
