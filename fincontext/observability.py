"""
Structured logging setup.

Modules obtain loggers with ``structlog.get_logger(__name__)`` and emit
dotted event names with keyword context. Call ``setup_logging`` once at
process start to choose the level and renderer.
"""

from __future__ import annotations

import logging
import sys
from typing import Any, Optional

import structlog

from .config import Settings


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    service_name: str = "fincontext",
) -> None:
    """Configure stdlib logging and the structlog processor chain."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.bind_contextvars(service=service_name)


def setup_logging_from_settings(settings: Optional[Settings] = None) -> None:
    """Configure logging from a Settings object (defaults when omitted)."""
    if settings is None:
        settings = Settings()
    setup_logging(
        log_level=settings.log_level,
        log_format=settings.log_format,
        service_name=settings.service_name,
    )
