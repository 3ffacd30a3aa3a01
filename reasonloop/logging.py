"""Logging configuration for reasonloop."""

import logging
import sys
from typing import Any, TextIO

import structlog

from reasonloop.config import get_config


def configure_logging(level: str | None = None, stream: TextIO | None = None) -> None:
    """Configure structlog from the ``logging`` config section.

    Args:
        level: Level name overriding ``logging.level``
        stream: Output stream (stderr by default)
    """
    config = get_config()

    level_name = (level or config.logging.level).upper()
    log_level = getattr(logging, level_name, logging.INFO)

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if config.logging.format == "console":
        processors.append(structlog.dev.ConsoleRenderer(colors=(stream or sys.stderr).isatty()))
    else:
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream or sys.stderr),
        cache_logger_on_first_use=True,
    )


def run_context(**values: Any):
    """Context manager binding run-scoped fields (run id, agent name) to every log line."""
    return structlog.contextvars.bound_contextvars(**values)


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Get a logger instance.

    Args:
        name: Optional logger name (usually __name__)

    Returns:
        Configured structlog logger
    """
    if name:
        return structlog.get_logger(name)
    return structlog.get_logger()
