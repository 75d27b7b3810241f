"""OpenTelemetry and structured logging setup for the canteen service.

Both the uvicorn entry point and the Lambda container call
``setup_observability`` and ``configure_logging``; providers and
instrumentation are installed once per process however often they run.
"""

import logging
import os
from typing import Any

from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.botocore import BotocoreInstrumentor
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from pythonjsonlogger import jsonlogger

logger = logging.getLogger(__name__)

SERVICE_NAME = "canteen-svc"
SERVICE_VERSION = "1.0.0"
DEFAULT_OTLP_ENDPOINT = "http://localhost:4318"
DEFAULT_EXPORT_INTERVAL_MS = 60000

# boto3 and its HTTP stack log every request at INFO/DEBUG
NOISY_LOGGERS = ("botocore", "boto3", "urllib3")

_providers_installed = False


def get_service_resource() -> Resource:
    """Describe this service for traces and metrics."""
    return Resource.create(
        {
            "service.name": os.getenv("OTEL_SERVICE_NAME", SERVICE_NAME),
            "service.version": SERVICE_VERSION,
            "deployment.environment": os.getenv("ENVIRONMENT", "development"),
        }
    )


def _otlp_url(signal: str) -> str:
    endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", DEFAULT_OTLP_ENDPOINT).rstrip("/")
    return f"{endpoint}/v1/{signal}"


def build_tracer_provider(resource: Resource, export: bool) -> TracerProvider:
    """Create a tracer provider, batching spans to OTLP when ``export`` is set."""
    provider = TracerProvider(resource=resource)
    if export:
        exporter = OTLPSpanExporter(endpoint=_otlp_url("traces"))
        provider.add_span_processor(BatchSpanProcessor(exporter))
    return provider


def build_meter_provider(resource: Resource, export: bool) -> MeterProvider:
    """Create a meter provider, pushing to OTLP periodically when ``export`` is set.

    The push interval comes from ``OTEL_METRIC_EXPORT_INTERVAL`` in milliseconds.
    """
    if not export:
        return MeterProvider(resource=resource)

    interval = int(os.getenv("OTEL_METRIC_EXPORT_INTERVAL", str(DEFAULT_EXPORT_INTERVAL_MS)))
    reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=_otlp_url("metrics")), export_interval_millis=interval
    )
    return MeterProvider(resource=resource, metric_readers=[reader])


def setup_observability(app: Any = None, enable_exporters: bool = True) -> None:
    """Install tracing and metrics providers and instrument DynamoDB and the API.

    Exporters are never enabled when ``ENVIRONMENT=test``. Only the first
    call per process installs providers and botocore instrumentation;
    every call instruments the given app.

    Args:
        app: Optional FastAPI application to instrument
        enable_exporters: Whether to send telemetry to the OTLP endpoint
    """
    global _providers_installed

    if not _providers_installed:
        export = enable_exporters and os.getenv("ENVIRONMENT", "development") != "test"
        resource = get_service_resource()

        trace.set_tracer_provider(build_tracer_provider(resource, export))
        metrics.set_meter_provider(build_meter_provider(resource, export))
        BotocoreInstrumentor().instrument()
        _providers_installed = True

        if export:
            endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", DEFAULT_OTLP_ENDPOINT)
            logger.info(f"Exporting traces and metrics to {endpoint}")
        else:
            logger.info("Telemetry exporters disabled")

    if app is not None:
        FastAPIInstrumentor.instrument_app(app)
        logger.info("FastAPI application instrumented")


class TraceContextFilter(logging.Filter):
    """Attach the active trace and span ids to every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = trace.get_current_span().get_span_context()
        if context.is_valid:
            record.trace_id = format(context.trace_id, "032x")
            record.span_id = format(context.span_id, "016x")
        else:
            record.trace_id = None
            record.span_id = None
        return True


def configure_logging(log_level: str = "INFO") -> None:
    """Send JSON log lines, correlated with traces, to stderr.

    ``LOG_LEVEL`` overrides ``log_level``. Any existing root handlers are
    replaced.

    Args:
        log_level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    level_name = os.getenv("LOG_LEVEL", log_level).upper()
    level = getattr(logging, level_name, logging.INFO)

    formatter = jsonlogger.JsonFormatter(
        "%(asctime)s %(name)s %(levelname)s %(message)s %(trace_id)s %(span_id)s",
        rename_fields={"levelname": "level", "name": "logger"},
        static_fields={"service": os.getenv("OTEL_SERVICE_NAME", SERVICE_NAME)},
        timestamp=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    handler.addFilter(TraceContextFilter())

    root_logger = logging.getLogger()
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    logger.info(f"Structured JSON logging configured at {level_name} level")
