from __future__ import annotations

import logging
import sys
from typing import TextIO

"""Logging initialization with labeled prefixes.

Every line the CLI prints starts with one of DEBUG|INFO|WARN|ERROR|CRITICAL|SUMMARY.
Modules log through ``logging.getLogger(__name__)``; they all live under the
``shipment_ingest`` package, so their records reach the handler configured here.
With ``--debug`` the DEBUG lines also name the emitting module (``reader``,
``field_mapper``, ...) so a single row can be traced through the pipeline.
"""

__all__ = [
    "LOGGER_NAME",
    "NOISY_LOGGERS",
    "SUMMARY_LEVEL",
    "LabeledFormatter",
    "get_logger",
    "log_summary",
    "reset_logging",
    "set_debug",
    "setup_logging",
]

LOGGER_NAME = "shipment_ingest"
NOISY_LOGGERS = ("openai", "httpx", "urllib3")

# Between INFO (20) and WARNING (30) so it survives a WARNING-only handler
SUMMARY_LEVEL = 25

_logger: logging.Logger | None = None


class LabeledFormatter(logging.Formatter):
    """``LABEL message``; DEBUG records from submodules become ``DEBUG module: message``."""

    LEVEL_LABELS = {
        logging.DEBUG: "DEBUG",
        logging.INFO: "INFO",
        logging.WARNING: "WARN",
        logging.ERROR: "ERROR",
        logging.CRITICAL: "CRITICAL",
        SUMMARY_LEVEL: "SUMMARY",
    }

    def format(self, record: logging.LogRecord) -> str:
        label = self.LEVEL_LABELS.get(record.levelno, record.levelname)
        if record.levelno == logging.DEBUG and record.name.startswith(LOGGER_NAME + "."):
            module = record.name.rsplit(".", 1)[-1]
            return f"{label} {module}: {record.getMessage()}"
        return f"{label} {record.getMessage()}"


def setup_logging(stream: TextIO | None = None) -> logging.Logger:
    """Configure the ``shipment_ingest`` logger once; later calls return it unchanged.

    Args:
        stream: Output stream, stdout when omitted (the SUMMARY line is part of stdout)
    """
    global _logger
    if _logger is not None:
        return _logger

    logging.addLevelName(SUMMARY_LEVEL, "SUMMARY")
    package_logger = logging.getLogger(LOGGER_NAME)
    for old in package_logger.handlers[:]:
        package_logger.removeHandler(old)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(LabeledFormatter())
    handler.setLevel(logging.INFO)
    package_logger.addHandler(handler)
    package_logger.setLevel(logging.INFO)
    # Root handlers would print every line twice
    package_logger.propagate = False

    # inference and geocoding clients log every request at INFO
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _logger = package_logger
    return package_logger


def get_logger() -> logging.Logger:
    return _logger if _logger is not None else setup_logging()


def set_debug() -> None:
    """Lower the package logger and its handlers to DEBUG."""
    package_logger = get_logger()
    package_logger.setLevel(logging.DEBUG)
    for h in package_logger.handlers:
        h.setLevel(logging.DEBUG)


def log_summary(message: str) -> None:
    """Emit ``message`` at SUMMARY level; the formatter adds the ``SUMMARY`` label."""
    get_logger().log(SUMMARY_LEVEL, message)


def reset_logging() -> None:
    """Drop the configured handler so the next setup_logging starts fresh (tests)."""
    global _logger
    if _logger is not None:
        for h in _logger.handlers[:]:
            _logger.removeHandler(h)
        _logger.setLevel(logging.NOTSET)
    _logger = None
