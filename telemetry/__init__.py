"""Tracing and logging bootstrap shared by the backend and client services.

Both services call ``configure_logging()`` and ``init_tracing()`` once at
import time. Tracing is optional: with ``OTEL_SDK_DISABLED=true`` nothing is
registered, the OpenTelemetry API falls back to no-op spans and every
``traceId`` in a response is ``None``.
"""

import logging
import os

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Status, StatusCode, format_trace_id

OTEL_URL = os.getenv('OTEL_URL', 'http://localhost:4318/v1/traces')
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

LOG_FORMAT = (
    '[%(asctime)s %(levelname)s] %(name)s: %(message)s'
    ' | TraceId=%(otelTraceID)s SpanId=%(otelSpanID)s'
)

logger = logging.getLogger(__name__)


def tracing_disabled():
    return os.getenv('OTEL_SDK_DISABLED', 'false').strip().lower() == 'true'


def configure_logging(level=None):
    """Send log records to the console with the active trace and span ids."""
    instrumentor = LoggingInstrumentor()
    if not instrumentor.is_instrumented_by_opentelemetry:
        # otelTraceID / otelSpanID are only added to records with inject_trace_context
        instrumentor.instrument(set_logging_format=False, inject_trace_context=True)
    logging.basicConfig(level=(level or LOG_LEVEL).upper(), format=LOG_FORMAT, datefmt='%H:%M:%S')


def init_tracing(service_name, endpoint=None):
    """Register a global tracer provider exporting spans over OTLP/HTTP.

    Returns the provider in use, or ``None`` when tracing is disabled. A
    provider registered earlier in the process (by another service module or
    a test harness) is reused as is.
    """
    if tracing_disabled():
        logger.info("Tracing disabled, %s runs without spans", service_name)
        return None

    current = trace.get_tracer_provider()
    if isinstance(current, TracerProvider):
        return current

    provider = TracerProvider(resource=Resource.create({SERVICE_NAME: service_name}))
    exporter = OTLPSpanExporter(endpoint=endpoint or OTEL_URL)
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)

    logger.info("OpenTelemetry tracing initialized for %s -> %s", service_name, endpoint or OTEL_URL)
    return provider


def current_trace_id():
    """Trace id of the active span as 32 hex characters, or None."""
    ctx = trace.get_current_span().get_span_context()
    if not ctx.is_valid:
        return None
    return format_trace_id(ctx.trace_id)


def record_exception(span, exc):
    # exception.type / exception.message / exception.stacktrace event
    if not span.is_recording():
        return
    span.set_status(Status(StatusCode.ERROR, str(exc)))
    span.record_exception(exc)
