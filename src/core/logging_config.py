"""Logging setup (structlog).

Nothing is configured on import: the hosting application calls
`configure_logging` once at startup.
"""

from __future__ import annotations

import logging
import sys

import structlog

from core.config import AppSettings


def configure_logging(settings: AppSettings | None = None) -> None:
    """Configure structlog processors and level filtering."""

    settings = settings or AppSettings()
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    processors: list[structlog.types.Processor] = [
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if settings.log_json:
        # Tracebacks become a plain `exception` string field.
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(colors=False, exception_formatter=structlog.dev.plain_traceback)
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )
