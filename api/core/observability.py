"""OpenTelemetry setup and the API's own metrics.

``configure_observability()`` runs once from ``main.py`` before the FastAPI
app exists. With ``OTLP_ENDPOINT`` set, trace, metric and log providers export
over OTLP gRPC and the app and engine are instrumented. Without it the
instrumentation helpers do nothing and the instruments below record into the
API's no-op meter.
"""

from __future__ import annotations

import logging
from typing import Any

from opentelemetry import metrics

from core.config import Settings, get_settings

logger = logging.getLogger(__name__)

_telemetry_enabled: bool = False

# Instruments are created against the global proxy meter, so they start
# exporting once a MeterProvider is installed.
_meter = metrics.get_meter("devhabit.api")

_write_counter = _meter.create_counter(
    "devhabit.writes",
    unit="1",
    description="Habit and tag write operations by resource and action",
)
_page_size_histogram = _meter.create_histogram(
    "devhabit.collection.items_returned",
    unit="1",
    description="Items returned per collection request",
)


def is_telemetry_enabled() -> bool:
    return _telemetry_enabled


def record_write(resource: str, action: str) -> None:
    """Count one successful write, e.g. ``record_write("habit", "created")``."""
    _write_counter.add(1, {"resource": resource, "action": action})


def record_collection_size(resource: str, returned: int) -> None:
    _page_size_histogram.record(returned, {"resource": resource})


def configure_observability(settings: Settings | None = None) -> None:
    """Install OTel providers when an OTLP endpoint is configured.

    Must be called before the FastAPI app and the engine are created.
    """
    global _telemetry_enabled  # noqa: PLW0603

    # The OTel SDK reads OTEL_* variables straight from os.environ.
    from dotenv import load_dotenv

    load_dotenv()

    settings = settings or get_settings()
    if not settings.otlp_endpoint:
        return

    _configure_otlp(settings.otlp_endpoint, settings.otel_service_name)
    _telemetry_enabled = True


def instrument_app(app: Any) -> None:
    """HTTP server spans and metrics for the FastAPI app."""
    if not _telemetry_enabled:
        return

    from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

    FastAPIInstrumentor.instrument_app(app, excluded_urls="health,ready")
    logger.info("telemetry.fastapi.instrumented")


def instrument_sqlalchemy_engine(engine: Any) -> None:
    """Query spans for an async engine (instrumented through its sync core)."""
    if not _telemetry_enabled:
        return

    from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor

    SQLAlchemyInstrumentor().instrument(
        engine=engine.sync_engine,
        enable_commenter=True,
    )
    logger.info("telemetry.sqlalchemy.instrumented")


def _configure_otlp(endpoint: str, service_name: str) -> None:
    from opentelemetry import trace
    from opentelemetry._logs import set_logger_provider
    from opentelemetry.exporter.otlp.proto.grpc._log_exporter import (
        OTLPLogExporter,
    )
    from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import (
        OTLPMetricExporter,
    )
    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
        OTLPSpanExporter,
    )
    from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
    from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
    from opentelemetry.sdk.metrics import MeterProvider
    from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
    from opentelemetry.sdk.resources import SERVICE_NAME, Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor

    insecure = endpoint.startswith("http://")
    resource = Resource.create({SERVICE_NAME: service_name})

    tracer_provider = TracerProvider(resource=resource)
    tracer_provider.add_span_processor(
        BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, insecure=insecure))
    )
    trace.set_tracer_provider(tracer_provider)

    reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=endpoint, insecure=insecure),
        export_interval_millis=15_000,
    )
    metrics.set_meter_provider(
        MeterProvider(resource=resource, metric_readers=[reader])
    )

    logger_provider = LoggerProvider(resource=resource)
    logger_provider.add_log_record_processor(
        BatchLogRecordProcessor(OTLPLogExporter(endpoint=endpoint, insecure=insecure))
    )
    set_logger_provider(logger_provider)

    # stdlib logging -> OTel logs; configure_logging() keeps this handler
    logging.getLogger().addHandler(
        LoggingHandler(level=logging.NOTSET, logger_provider=logger_provider)
    )

    logger.info(
        "telemetry.otlp.configured",
        extra={"endpoint": endpoint, "service": service_name},
    )
