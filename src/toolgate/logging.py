"""
Structured logging for Toolgate.

Toolgate logs through stdlib logging under the ``toolgate`` namespace and
never configures handlers on import. The CLI (or an embedding application)
calls configure_logging() once.

Usage:
    from toolgate.logging import get_logger

    logger = get_logger(__name__)
    logger.info("Tool call approved", extra={"tool_call_id": "ab12cd34"})

For machine-readable output:
    configure_logging(level="DEBUG", json_output=True)
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER = "toolgate"

# Structured fields lifted from ``extra={...}`` into the output
STRUCTURED_FIELDS = (
    "tool_call_id",
    "tool_name",
    "state",
    "actor",
    "sequence",
    "snapshot_id",
    "rule",
)


class JsonFormatter(logging.Formatter):
    """One JSON object per line, carrying the structured fields."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in STRUCTURED_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log_data[key] = value
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data, default=str)


class ContextFormatter(logging.Formatter):
    """Append structured fields to the message for human-readable output."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        fields = {
            key: getattr(record, key)
            for key in STRUCTURED_FIELDS
            if getattr(record, key, None) is not None
        }
        if fields:
            message += " | " + " ".join(f"{k}={v}" for k, v in fields.items())
        return message


def configure_logging(level: str = "WARNING", json_output: bool = False) -> None:
    """
    Configure the ``toolgate`` logger.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: Emit JSON lines instead of rich console output
    """
    root_logger = logging.getLogger(ROOT_LOGGER)
    root_logger.setLevel(getattr(logging, level.upper(), logging.WARNING))
    root_logger.handlers.clear()

    handler: logging.Handler
    if json_output:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(JsonFormatter())
    else:
        handler = RichHandler(
            console=Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
        )
        handler.setFormatter(ContextFormatter("%(message)s"))
    root_logger.addHandler(handler)
    root_logger.propagate = False


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    """
    Get a Toolgate logger instance.

    Args:
        name: Logger name, usually the module's ``__name__``
    """
    return logging.getLogger(name)
