"""OpenTelemetry tracing for fixture lifecycle operations.

Spans are only exported once ``setup_tracing`` installs a provider; until
then ``trace_span`` runs against the no-op tracer of the OpenTelemetry API.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Generator, Mapping

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

from fixture_containers.infrastructure.config import ObservabilityConfig

TRACER_NAME = "fixture_containers"

_provider: TracerProvider | None = None


def setup_tracing(config: ObservabilityConfig, console_export: bool = False) -> trace.Tracer:
    """Install a tracer provider exporting to the configured OTLP endpoint."""
    global _provider

    from fixture_containers import __version__

    resource = Resource.create(
        {"service.name": config.otel_service_name, "service.version": __version__}
    )
    _provider = TracerProvider(resource=resource)
    if config.otel_endpoint:
        _provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=config.otel_endpoint, insecure=True))
        )
    if console_export:
        _provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(_provider)
    return get_tracer()


def shutdown_tracing() -> None:
    """Flush pending spans; a no-op when tracing was never set up."""
    global _provider
    provider, _provider = _provider, None
    if provider is not None:
        provider.shutdown()


def get_tracer() -> trace.Tracer:
    return trace.get_tracer(TRACER_NAME)


@contextmanager
def trace_span(
    name: str, attributes: Mapping[str, Any] | None = None
) -> Generator[trace.Span, None, None]:
    """Span around one fixture operation.

    Attributes with a None value are dropped. A failing operation tags the
    span with ``error.type`` before the exception propagates.
    """
    present = {key: value for key, value in (attributes or {}).items() if value is not None}
    with get_tracer().start_as_current_span(name, attributes=present) as span:
        try:
            yield span
        except Exception as e:
            span.set_attribute("error.type", type(e).__name__)
            raise
