"""Structured logging configuration for Broker Guard.

Provides JSON-formatted structured logging with contextual fields
(config_source, broker) via contextvars.
"""

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

# Context variables for scoped logging fields
_config_source: ContextVar[Optional[str]] = ContextVar("config_source", default=None)
_broker: ContextVar[Optional[str]] = ContextVar("broker", default=None)


def set_log_context(
    config_source: Optional[str] = None,
    broker: Optional[str] = None,
):
    """Set contextual logging fields for the current context."""
    if config_source is not None:
        _config_source.set(config_source)
    if broker is not None:
        _broker.set(broker)


def clear_log_context():
    """Clear all contextual logging fields."""
    _config_source.set(None)
    _broker.set(None)


@contextmanager
def config_source_context(source: str) -> Iterator[None]:
    """Tag log records emitted inside the block with *source*."""
    token = _config_source.set(source)
    try:
        yield
    finally:
        _config_source.reset(token)


class StructuredFormatter(logging.Formatter):
    """JSON structured log formatter with context fields."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        source = _config_source.get()
        if source:
            log_entry["config_source"] = source

        broker = _broker.get()
        if broker:
            log_entry["broker"] = broker

        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry)


class HumanReadableFormatter(logging.Formatter):
    """Human-readable log formatter with context fields for development."""

    def format(self, record: logging.LogRecord) -> str:
        parts = [
            f"[{self.formatTime(record, self.datefmt)}]",
            f"{record.levelname:8s}",
            f"{record.name}:",
            record.getMessage(),
        ]

        ctx_parts = []
        source = _config_source.get()
        if source:
            ctx_parts.append(f"source={source}")
        broker = _broker.get()
        if broker:
            ctx_parts.append(f"broker={broker}")

        if ctx_parts:
            parts.append(f"[{', '.join(ctx_parts)}]")

        msg = " ".join(parts)

        if record.exc_info and record.exc_info[1]:
            msg += "\n" + self.formatException(record.exc_info)

        return msg


def configure_logging(environment: str = "development", log_level: str = "INFO"):
    """Configure logging for the command line tools.

    Args:
        environment: "production" for JSON output, anything else for human-readable.
        log_level: Logging level string (DEBUG, INFO, WARNING, ERROR).
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    root_logger.handlers.clear()

    # stdout carries command output (e.g. hashed password snippets)
    handler = logging.StreamHandler(sys.stderr)

    if environment == "production":
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(HumanReadableFormatter(
            datefmt="%Y-%m-%d %H:%M:%S"
        ))

    root_logger.addHandler(handler)
