"""
Structured logging setup.

Every module logs through structlog.get_logger(__name__) with
snake_case event names and keyword context.
"""

import logging
import sys

import structlog

from config.settings import Settings, get_settings


def configure_logging(settings: Settings = None) -> None:
    """
    Configure structlog on top of the standard logging module.

    JSON output in production, colored console output otherwise.
    """
    settings = settings or get_settings()

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level),
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer() if settings.is_production
                else structlog.dev.ConsoleRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
