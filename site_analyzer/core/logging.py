"""
structlog setup for the API process and the crawl workers.

Every event carries the analyzed site (bound per task), an ISO timestamp and a
`severity` field for log shippers. LOG_FORMAT picks JSON lines or the dev
console renderer.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from site_analyzer.core.config import get_settings

MAX_FIELD_CHARS = 2000

# Quieted to WARNING outside development
NOISY_LOGGERS = ("asyncio", "httpx", "httpcore", "playwright", "openai", "celery.redirected")

SEVERITIES = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def add_severity(logger: Any, method: str, event_dict: EventDict) -> EventDict:
    severity = method.upper()
    event_dict["severity"] = severity if severity in SEVERITIES else "INFO"
    return event_dict


def truncate_long_values(logger: Any, method: str, event_dict: EventDict) -> EventDict:
    """Cap long string fields (page HTML, model responses) so one event stays one line."""
    for key, value in event_dict.items():
        if key != "event" and isinstance(value, str) and len(value) > MAX_FIELD_CHARS:
            event_dict[key] = f"{value[:MAX_FIELD_CHARS]}... [{len(value) - MAX_FIELD_CHARS} more chars]"
    return event_dict


def bind_analysis_context(url: str, category: str, task_id: str | None = None) -> None:
    """Attach the analyzed site to every log event emitted in this context."""
    structlog.contextvars.clear_contextvars()
    context = {"site_url": url, "category": category}
    if task_id:
        context["task_id"] = task_id
    structlog.contextvars.bind_contextvars(**context)


def build_processors(log_format: str) -> list[Processor]:
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        add_severity,
        truncate_long_values,
    ]
    if log_format == "json":
        return processors + [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return processors + [structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())]


def configure_logging() -> None:
    settings = get_settings()
    log_level = logging.getLevelName(settings.LOG_LEVEL.upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO

    structlog.configure(
        processors=build_processors(settings.LOG_FORMAT),
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)

    if settings.ENV != "development":
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
