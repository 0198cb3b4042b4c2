"""Structured logging configuration for zkwatch.

This module configures structlog with support for:
- JSON and console output formats
- File rotation based on size
- Client context binding (connection string, base path)

The logging system integrates structlog with Python's stdlib logging
for handlers (file rotation), while using structlog exclusively for
actual log emission. Library modules only call ``structlog.get_logger``;
``setup_logging`` is for applications and the command line tool.

Example usage:
    >>> from zkwatch.config import LoggingConfig
    >>> from zkwatch.logging import setup_logging, get_logger, bind_client_context
    >>>
    >>> setup_logging(LoggingConfig(level="INFO", format="json"))
    >>> bind_client_context(connection_string="zk1:2181", base_path="/services")
    >>> get_logger(__name__).info("watch_started", path="/services/api")
"""

from __future__ import annotations

import logging
import logging.handlers
import sys
from typing import TextIO

import structlog

from zkwatch.config import LoggingConfig


def bind_client_context(connection_string: str, base_path: str | None = None) -> None:
    """Bind the client's connection details to all subsequent logs.

    Args:
        connection_string: Ensemble the client talks to
        base_path: Base path prefix of the client, if any
    """
    structlog.contextvars.bind_contextvars(
        connection_string=connection_string,
        base_path=base_path or "/",
    )


def setup_logging(config: LoggingConfig, stream: TextIO | None = None) -> None:
    """Configure structlog with the given configuration.

    This function sets up the complete logging pipeline including:
    - JSON or console rendering based on config.format
    - File rotation if config.file is specified
    - Timestamp, log level, and logger name processors
    - Context variables bound through bind_client_context

    Args:
        config: Logging configuration from ZkWatchConfig
        stream: Stream used when no log file is configured (default stdout)
    """
    log_level = getattr(logging, config.level)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    if config.file is not None:
        config.file.parent.mkdir(parents=True, exist_ok=True)

        handler: logging.Handler = logging.handlers.RotatingFileHandler(
            filename=config.file,
            maxBytes=config.rotation_size_mb * 1024 * 1024,
            backupCount=config.retention_count,
            encoding="utf-8",
        )
    else:
        handler = logging.StreamHandler(stream or sys.stdout)

    handler.setLevel(log_level)
    root_logger.addHandler(handler)

    # kazoo logs every connection attempt at INFO
    logging.getLogger("kazoo").setLevel(max(log_level, logging.WARNING))

    if config.format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:  # console
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.contextvars.merge_contextvars,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        Configured structlog BoundLogger instance
    """
    return structlog.get_logger(name)
