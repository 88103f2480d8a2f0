"""
OpenTelemetry Tracing Integration.

Spans around compliance scans. Without a configured tracer provider the
OpenTelemetry API hands out no-op spans, so tracing costs nothing by default.
"""

import os
from typing import Any, Optional

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource as OTelResource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
    SpanExporter,
)


def get_tracer(name: str = "tagguard"):
    """Get tracer instance."""
    return trace.get_tracer(name)


def configure_tracing(
    service_name: str = "tagguard",
    console: bool = False,
    exporter: Optional[SpanExporter] = None,
) -> TracerProvider:
    """Configure OpenTelemetry tracing.

    Args:
        service_name: Service name for traces.
        console: If True, add a ConsoleSpanExporter for local debugging.
        exporter: Additional exporter, batched (e.g. an OTLP exporter).

    Returns:
        The TracerProvider installed as the global provider.
    """
    resource = OTelResource.create(
        {
            "service.name": service_name,
            "service.namespace": "tagguard",
            "deployment.environment": os.getenv("TAGGUARD_ENV", "development"),
        }
    )
    provider = TracerProvider(resource=resource)

    if console:
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
    if exporter is not None:
        provider.add_span_processor(BatchSpanProcessor(exporter))

    trace.set_tracer_provider(provider)
    return provider


class TraceContext:
    """Context manager for manual tracing."""

    def __init__(self, operation_name: str, **attributes: Any):
        self.operation_name = operation_name
        self.attributes = attributes
        self.span = None

    def __enter__(self):
        self.span = get_tracer().start_span(self.operation_name)
        for key, value in self.attributes.items():
            self.span.set_attribute(key, value)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.span is None:
            return
        if exc_type:
            self.span.set_attribute("operation.status", "error")
            self.span.set_attribute("error.type", exc_type.__name__)
            self.span.set_attribute("error.message", str(exc_val))
            self.span.record_exception(exc_val)
        else:
            self.span.set_attribute("operation.status", "success")
        self.span.end()

    def set_attribute(self, key: str, value: Any):
        """Set attribute on current span."""
        if self.span:
            self.span.set_attribute(key, value)

    def add_event(self, name: str, attributes: Optional[dict] = None):
        """Add event to current span."""
        if self.span:
            self.span.add_event(name, attributes or {})
