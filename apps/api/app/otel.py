from __future__ import annotations

import os
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter, SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from app.core.config import get_settings
from app.middleware.correlation_id import CORRELATION_HEADER


_provider: TracerProvider | None = None
_exporters_configured = False


def _tracer_provider(service_name: str) -> TracerProvider:
    global _provider

    if _provider is None:
        settings = get_settings()
        _provider = TracerProvider(
            resource=Resource.create(
                {
                    "service.name": service_name,
                    "service.version": os.getenv("APP_VERSION", "0.1.0"),
                    "deployment.environment": settings.app_env,
                }
            )
        )
        trace.set_tracer_provider(_provider)
    return _provider


def setup_otel(service_name: str, enable: bool) -> TracerProvider | None:
    """Install the tracer provider and opt-in exporters once per process.

    OTLP export needs ``OTEL_EXPORTER_OTLP_ENDPOINT``; console export needs
    ``OTEL_CONSOLE_EXPORTER=true``.
    """

    global _exporters_configured

    if not enable:
        return None

    provider = _tracer_provider(service_name)
    if _exporters_configured:
        return provider

    endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    if endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
    if os.getenv("OTEL_CONSOLE_EXPORTER", "false").lower() == "true":
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

    _exporters_configured = True
    return provider


def setup_inmemory_otel(service_name: str = "api") -> InMemorySpanExporter:
    exporter = InMemorySpanExporter()
    _tracer_provider(service_name).add_span_processor(SimpleSpanProcessor(exporter))
    return exporter


def get_tracer(name: str) -> trace.Tracer:
    return trace.get_tracer(name)


def set_span_attributes(span: trace.Span, **attributes: Any) -> None:
    # OTel rejects None attribute values; ids are exported as strings
    for key, value in attributes.items():
        if value is None:
            continue
        span.set_attribute(key, value if isinstance(value, (str, bool, int, float)) else str(value))


def get_fastapi_server_request_hook():
    header_name = CORRELATION_HEADER.encode("latin-1")

    def server_request_hook(span, scope: dict[str, Any]) -> None:  # type: ignore[no-untyped-def]
        if span is None or not span.is_recording():
            return
        correlation_raw = dict(scope.get("headers", [])).get(header_name)
        if correlation_raw:
            span.set_attribute("correlation_id", correlation_raw.decode("latin-1"))

    return server_request_hook
