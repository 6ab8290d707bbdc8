"""
Module: logger.py
Description: Structured logging configuration for the webhook relay.

Configures structlog for JSON output optimized for CloudWatch Logs.
Provides consistent logging across the API, the delivery worker and
the storage layer with proper context and structured data.

Key Components:
- JSON output for CloudWatch compatibility
- Timestamp and log level processors
- configure_logging() to apply the configured level
- get_logger() helper function

Dependencies: structlog, logging, datetime
"""

import logging
from datetime import datetime, timezone

import structlog


def _add_timestamp(logger, method_name, event_dict):
    """
    Add ISO 8601 UTC timestamp to log entries.

    Args:
        logger: Logger instance
        method_name: Log method name (info, error, etc.)
        event_dict: Current log event dictionary

    Returns:
        Updated event dictionary with timestamp
    """
    event_dict["timestamp"] = (
        datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    )
    return event_dict


def _add_log_level(logger, method_name, event_dict):
    """
    Add log level to event dictionary.

    Args:
        logger: Logger instance
        method_name: Log method name (info, error, etc.)
        event_dict: Current log event dictionary

    Returns:
        Updated event dictionary with level
    """
    event_dict["level"] = method_name.upper()
    return event_dict


def configure_logging(level: str = "INFO") -> None:
    """
    Configure structlog for JSON output at the given level.

    Safe to call more than once; the last call wins. Called by the API
    on startup and by the worker entry points.

    Args:
        level: Standard logging level name (DEBUG, INFO, ...)
    """
    structlog.configure(
        processors=[
            # Add timestamp and log level
            _add_timestamp,
            _add_log_level,
            # Add exception information
            structlog.processors.format_exc_info,
            # Render as JSON for CloudWatch compatibility
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.WriteLoggerFactory(),
        # Drop records below the configured level before rendering
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
        cache_logger_on_first_use=False,
    )


configure_logging()


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Get a configured structlog logger instance.

    Creates a logger with the specified name that outputs JSON
    formatted logs suitable for CloudWatch Logs ingestion.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger instance

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("Event stored", event_id="evt_123", status="pending")
        {"event": "Event stored", "event_id": "evt_123", "status": "pending", "timestamp": "2024-01-15T10:30:00.000Z", "level": "INFO"}
    """
    return structlog.get_logger(name)
