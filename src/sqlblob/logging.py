"""
Logging setup of sqlblob: one package logger with a stream handler.

The initial level comes from SQLBLOB_LOG_LEVEL (default INFO); config["loglevel"]
changes it later. Uncaught exceptions are logged as errors.
"""

from __future__ import annotations

import logging
import os
import sys
from types import TracebackType

logger = logging.getLogger(__name__.split(".")[0])

_handler = logging.StreamHandler()
_handler.setFormatter(logging.Formatter("[%(asctime)s][%(levelname)s]: %(message)s"))
logger.handlers = [_handler]
logger.setLevel(os.getenv("SQLBLOB_LOG_LEVEL", "INFO").upper())


def excepthook(
    exc_type: type[BaseException],
    exc_value: BaseException,
    exc_traceback: TracebackType | None,
) -> None:
    """Log an uncaught exception; keyboard interrupts go to the default hook."""
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_traceback)
    else:
        logger.error("Uncaught exception", exc_info=(exc_type, exc_value, exc_traceback))


sys.excepthook = excepthook
