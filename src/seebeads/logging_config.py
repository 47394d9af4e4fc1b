"""
Centralized Logging Configuration with Structured Logging Support

Supports both traditional text logging and structured JSON logging with a
per-connection correlation ID (set by the SSE endpoint to the subscriber ID).

Usage:
    from seebeads.logging_config import configure_logging, setup_structured_logging

    # Traditional logging
    configure_logging(log_level="DEBUG")

    # Structured logging (for the server)
    setup_structured_logging()

Environment Variables:
    SEEBEADS_LOG_DIR - Write a log file into this directory
    SEEBEADS_LOG_LEVEL - Set log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
"""

from __future__ import annotations

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import datetime
from pathlib import Path
from typing import Optional

correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

_STANDARD_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "taskName",
        "exc_info",
        "exc_text",
        "stack_info",
        "message",
    }
)


class StructuredFormatter(logging.Formatter):
    """JSON formatter with correlation ID.

    Each entry carries timestamp, level, logger name, message, correlation
    ID, and any ``extra`` fields attached to the record.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": correlation_id_var.get(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS:
                log_data[key] = value

        return json.dumps(log_data, default=str)


def _resolve_level(log_level: Optional[str]) -> int:
    if log_level is None:
        log_level = os.environ.get("SEEBEADS_LOG_LEVEL", "INFO")
    return getattr(logging, log_level.upper(), logging.INFO)


def setup_structured_logging(log_level: Optional[str] = None) -> None:
    """Configure the root logger for JSON output on stdout.

    Args:
        log_level: Logging level name; falls back to SEEBEADS_LOG_LEVEL
    """
    level = _resolve_level(log_level)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter())
    handler.setLevel(level)
    root_logger.addHandler(handler)


def configure_logging(
    log_level: Optional[str] = None,
    log_dir: Optional[Path] = None,
    log_to_console: bool = True,
    log_filename: Optional[str] = None,
) -> logging.Logger:
    """
    Configure the ``seebeads`` logger.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for a log file; SEEBEADS_LOG_DIR when None, and
            no file is written if neither is set
        log_to_console: Whether to log to stdout
        log_filename: Custom log filename (timestamped by default)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger("seebeads")
    logger.handlers.clear()
    logger.setLevel(_resolve_level(log_level))

    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if log_to_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_dir is None and "SEEBEADS_LOG_DIR" in os.environ:
        log_dir = Path(os.environ["SEEBEADS_LOG_DIR"])

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        if log_filename is None:
            log_filename = f"seebeads_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
        log_path = log_dir / log_filename

        file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

        logger.info(f"Logging to: {log_path}")

    return logger
