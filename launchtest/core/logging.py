import logging
from typing import Optional

import structlog

from launchtest.config import Settings, get_settings


def configure_logging(level: str = "INFO", json_logs: bool = False) -> None:
    """Configure structlog for the decision engine.

    Events are emitted as ``logger.info("event_name", key=value)``; the
    renderer is JSON for log aggregation or a console renderer for local use.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_logs:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        cache_logger_on_first_use=True,
    )


def configure_logging_from_settings(settings: Optional[Settings] = None) -> None:
    settings = settings or get_settings()
    configure_logging(level=settings.LOG_LEVEL, json_logs=settings.LOG_JSON)
