"""Logging setup using structlog.

stdlib loggers (uvicorn, sqlalchemy, alembic, and modules using
``logging.getLogger``) and structlog loggers share one formatter:

- JSON lines when ``LOG_FORMAT=json``, or when OTLP export is on and the
  format is left at ``auto``
- coloured console output otherwise
- OpenTelemetry trace/span ids and the request id merged into every entry

Usage:
    from core import get_logger
    logger = get_logger(__name__)
    logger.info("habit.created", habit_id="h_123")
"""

import logging
import sys

import structlog
from structlog.types import EventDict, Processor

from core.config import Settings, get_settings

bind_contextvars = structlog.contextvars.bind_contextvars
clear_contextvars = structlog.contextvars.clear_contextvars

# Library loggers that are too chatty at INFO
_QUIET_LOGGERS = ("uvicorn.access", "aiosqlite", "asyncio")


def _add_open_telemetry_spans(
    _logger: logging.Logger, _method_name: str, event_dict: EventDict
) -> EventDict:
    """Correlate log entries with the active span."""
    from core.observability import is_telemetry_enabled

    if not is_telemetry_enabled():
        return event_dict

    from opentelemetry import trace

    span = trace.get_current_span()
    if span.is_recording():
        ctx = span.get_span_context()
        if ctx.is_valid:
            event_dict["trace_id"] = format(ctx.trace_id, "032x")
            event_dict["span_id"] = format(ctx.span_id, "016x")

    return event_dict


def _shared_processors() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.ExtraAdder(),
        structlog.stdlib.PositionalArgumentsFormatter(),
        _add_open_telemetry_spans,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _renderer(settings: Settings) -> Processor:
    if settings.json_logs:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(
        colors=sys.stdout.isatty(),
        exception_formatter=structlog.dev.plain_traceback,
    )


def configure_logging(settings: Settings | None = None) -> None:
    """Configure structlog and the stdlib root logger. Call once at startup."""
    settings = settings or get_settings()
    shared = _shared_processors()

    structlog.configure(
        processors=shared
        + [
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            _renderer(settings),
        ],
    )

    # Keep the OTel LoggingHandler installed by configure_observability()
    root_logger = logging.getLogger()
    otel_handlers = [
        h for h in root_logger.handlers if "LoggingHandler" in type(h).__name__
    ]
    root_logger.handlers.clear()
    for h in otel_handlers:
        root_logger.addHandler(h)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)
    root_logger.setLevel(
        logging.getLevelNamesMapping().get(settings.log_level.upper(), logging.INFO)
    )

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    # DB_ECHO goes through this formatter rather than SQLAlchemy's own handler
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.db_echo else logging.WARNING
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Example:
        logger = get_logger(__name__)
        logger.info("tag.created", tag_id="t_123", name="reading")
    """
    return structlog.stdlib.get_logger(name)
