"""
Structured logging for OpsMetrics.

Every log line carries the application name and version, the request id bound
by the HTTP middleware, and a ``severity`` field. Snapshot builds log
snake_case events (``snapshot_build_started``, ``collection_fetch_failed``,
...) with keyword context; enum values in that context are rendered as their
plain string values.
"""

import logging
import sys
from enum import Enum
from typing import Any, Optional

import structlog
from structlog.types import EventDict, Processor

from opsmetrics import __version__
from opsmetrics.config import Settings, get_settings

# Third-party loggers kept at WARNING unless the app runs at DEBUG
NOISY_LOGGERS = ("uvicorn.access", "httpx", "asyncio")


def add_severity(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict["severity"] = method_name.upper()
    return event_dict


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("app", "opsmetrics")
    event_dict.setdefault("version", __version__)
    return event_dict


def render_enum_values(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Replace enum members (entity kinds, statuses, granularities) by their values."""
    for key, value in event_dict.items():
        if isinstance(value, Enum):
            event_dict[key] = value.value
    return event_dict


def configure_logging(settings: Optional[Settings] = None) -> None:
    """
    Configure stdlib logging and structlog once for the process.

    JSON lines in production, console rendering in dev mode (without colors
    under test so captured output stays readable).
    """
    settings = settings or get_settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    if settings.log_format == "json" and not settings.dev_mode:
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=not settings.testing)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            add_severity,
            add_app_context,
            render_enum_values,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = __name__) -> structlog.BoundLogger:
    return structlog.get_logger(name)
