"""Observability setup for OpenTelemetry, metrics, and structured logging."""

import logging

from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest
import structlog

from .config import settings

SERVICE_NAME = "lodging-booking-engine"
SERVICE_VERSION = "1.0.0"

# Prometheus metrics
REGISTRY = CollectorRegistry()

# Request metrics
REQUEST_COUNT = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status_code'],
    registry=REGISTRY
)

REQUEST_DURATION = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    registry=REGISTRY
)

# Business metrics
HOLDS_CREATED = Counter(
    'booking_holds_created_total',
    'Total booking holds created',
    ['source'],
    registry=REGISTRY
)

HOLDS_EXPIRED = Counter(
    'booking_holds_expired_total',
    'Total booking holds expired by the sweep',
    registry=REGISTRY
)

BOOKING_TRANSITIONS = Counter(
    'booking_transitions_total',
    'Booking state transitions by target status',
    ['to_status'],
    registry=REGISTRY
)

CAPACITY_REJECTIONS = Counter(
    'inventory_capacity_rejections_total',
    'Hold attempts rejected for lack of free-to-sell capacity',
    registry=REGISTRY
)

CONCURRENCY_CONFLICTS = Counter(
    'concurrency_conflicts_total',
    'Operations that hit lock contention or serialization failures',
    ['operation'],
    registry=REGISTRY
)

INVARIANT_VIOLATIONS = Counter(
    'invariant_violations_total',
    'Ledger mutations refused because they would corrupt bookkeeping',
    registry=REGISTRY
)

PAYMENTS_RECORDED = Counter(
    'payments_recorded_total',
    'Payment ledger entries appended',
    ['method', 'status'],
    registry=REGISTRY
)

LAST_SWEEP_EXPIRED = Gauge(
    'hold_sweep_last_expired',
    'Number of holds expired by the most recent sweep',
    registry=REGISTRY
)


def setup_structured_logging():
    """Configure structured logging with structlog."""

    def add_trace_context(logger, method_name, event_dict):
        """Add trace context to log events."""
        span = trace.get_current_span()
        if span and span.is_recording():
            ctx = span.get_span_context()
            event_dict['trace_id'] = format(ctx.trace_id, '032x')
            event_dict['span_id'] = format(ctx.span_id, '016x')
        return event_dict

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_trace_context,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.ConsoleRenderer() if settings.debug else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.log_level)
        ),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def bind_request_context(**values) -> None:
    """Attach values (request id, actor) to every structlog event of the current task."""
    structlog.contextvars.bind_contextvars(**values)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()


def _resource() -> Resource:
    return Resource.create({
        "service.name": SERVICE_NAME,
        "service.version": SERVICE_VERSION,
        "environment": settings.environment,
    })


def setup_tracing(app_name: str = SERVICE_NAME):
    """Setup OpenTelemetry tracing."""
    provider = TracerProvider(resource=_resource())
    trace.set_tracer_provider(provider)

    if settings.otlp_endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otlp_endpoint)))

    return trace.get_tracer(app_name)


def setup_metrics(app_name: str = SERVICE_NAME):
    """Setup OpenTelemetry metrics."""
    if settings.otlp_endpoint:
        reader = PeriodicExportingMetricReader(
            exporter=OTLPMetricExporter(endpoint=settings.otlp_endpoint),
            export_interval_millis=60000,
        )
        metrics.set_meter_provider(MeterProvider(resource=_resource(), metric_readers=[reader]))

    return metrics.get_meter(app_name)


def instrument_fastapi(app):
    """Instrument FastAPI with OpenTelemetry."""
    FastAPIInstrumentor.instrument_app(app)


def instrument_sqlalchemy(engine=None):
    """Instrument SQLAlchemy with OpenTelemetry."""
    if engine is not None:
        SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)
    else:
        SQLAlchemyInstrumentor().instrument()


class MetricsCollector:
    """Collector for booking engine metrics."""

    @staticmethod
    def record_hold_created(source: str):
        HOLDS_CREATED.labels(source=source).inc()

    @staticmethod
    def record_holds_expired(count: int):
        """Record the outcome of one sweep."""
        if count:
            HOLDS_EXPIRED.inc(count)
        LAST_SWEEP_EXPIRED.set(count)

    @staticmethod
    def record_transition(to_status: str):
        BOOKING_TRANSITIONS.labels(to_status=to_status).inc()

    @staticmethod
    def record_capacity_rejection():
        CAPACITY_REJECTIONS.inc()

    @staticmethod
    def record_concurrency_conflict(operation: str):
        CONCURRENCY_CONFLICTS.labels(operation=operation).inc()

    @staticmethod
    def record_invariant_violation():
        INVARIANT_VIOLATIONS.inc()

    @staticmethod
    def record_payment(method: str, status: str):
        PAYMENTS_RECORDED.labels(method=method, status=status).inc()


def get_prometheus_metrics():
    """Get Prometheus metrics for the /metrics endpoint."""
    return generate_latest(REGISTRY)


# Global metrics collector instance
metrics_collector = MetricsCollector()
