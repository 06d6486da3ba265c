"""Logging configuration for the PHI core."""

import logging
import sys
from typing import Any, Optional

import structlog
from structlog.stdlib import BoundLogger, LoggerFactory


def setup_logging(level: str = "INFO", log_format: str = "console") -> None:
    """Configure structured logging for the application."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper()),
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            render_processor(log_format),
        ],
        context_class=dict,
        logger_factory=LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def setup_logging_from_settings(settings: Optional[Any] = None) -> None:
    """Configure logging from application settings."""
    if settings is None:
        from phi_core.config import (  # pylint: disable=import-outside-toplevel
            get_settings,
        )

        settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)


def render_processor(log_format: str = "console") -> Any:
    """Choose renderer based on environment."""
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def get_logger(name: str) -> BoundLogger:
    """Get a configured logger instance."""
    bound_logger: BoundLogger = structlog.get_logger(name)
    return bound_logger
