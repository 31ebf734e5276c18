"""
OpenTelemetry Configuration

Sets up distributed tracing and structured logging for the DOB API.
"""

import os
import json
import logging
from typing import Optional
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

SERVICE_NAME = 'dob-api'

# Attributes every LogRecord carries; anything else came from ``extra``
_RESERVED_RECORD_ATTRS = set(vars(logging.makeLogRecord({}))) | {'message', 'asctime'}

_tracer_provider_configured = False


class StructuredFormatter(logging.Formatter):
    """Render log records as single-line JSON with trace correlation."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage()
        }

        span_context = trace.get_current_span().get_span_context()
        if span_context.is_valid:
            payload["trace_id"] = format(span_context.trace_id, "032x")
            payload["span_id"] = format(span_context.span_id, "016x")

        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_ATTRS and not key.startswith('_'):
                payload[key] = value

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


def setup_observability(environment: Optional[str] = None, otel_enabled: Optional[bool] = None):
    """Initialize logging and OpenTelemetry tracing; unset arguments come from the environment."""
    global _tracer_provider_configured

    environment = environment or os.getenv('ENVIRONMENT', 'development')
    if otel_enabled is None:
        otel_enabled = os.getenv('OTEL_ENABLED', 'true').lower() == 'true'
    service_version = os.getenv('SERVICE_VERSION', '1.0.0')

    # Configure structured logging
    setup_structured_logging(environment)

    if not otel_enabled or _tracer_provider_configured:
        return

    # Environment-specific sampling
    if environment == 'production':
        sampler = TraceIdRatioBased(0.1)  # 10% sampling in production
    elif environment == 'staging':
        sampler = TraceIdRatioBased(0.5)  # 50% sampling in staging
    else:
        sampler = TraceIdRatioBased(1.0)  # 100% sampling in development

    resource = Resource.create({
        "service.name": SERVICE_NAME,
        "service.version": service_version,
        "deployment.environment": environment
    })

    tracer_provider = TracerProvider(
        sampler=sampler,
        resource=resource
    )

    otlp_endpoint = os.getenv('OTEL_EXPORTER_OTLP_ENDPOINT')
    if otlp_endpoint:
        headers = {}
        if os.getenv('OTEL_API_KEY'):
            headers["Authorization"] = f"Bearer {os.getenv('OTEL_API_KEY')}"
        otlp_exporter = OTLPSpanExporter(endpoint=otlp_endpoint, headers=headers or None)
        tracer_provider.add_span_processor(
            BatchSpanProcessor(otlp_exporter, max_export_batch_size=512)
        )
    elif environment == 'development':
        # Development: Console output
        tracer_provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(tracer_provider)
    _tracer_provider_configured = True


def setup_structured_logging(environment: str):
    """Configure structured JSON logging with trace correlation."""
    log_level = {
        'production': logging.WARNING,
        'staging': logging.INFO,
        'development': logging.DEBUG
    }.get(environment, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Repeated app creation must not duplicate output
    if not any(isinstance(h.formatter, StructuredFormatter) for h in root_logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(StructuredFormatter())
        root_logger.addHandler(handler)

    # Environment-specific logger configuration
    if environment == 'production':
        logging.getLogger('urllib3').setLevel(logging.WARNING)
        logging.getLogger('pymongo').setLevel(logging.WARNING)
        logging.getLogger('pika').setLevel(logging.ERROR)
    else:
        logging.getLogger('pymongo').setLevel(logging.INFO)
        logging.getLogger('pika').setLevel(logging.WARNING)
