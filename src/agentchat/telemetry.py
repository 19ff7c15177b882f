"""Tracing for the chat server.

``OBSERVABILITY=logfire`` sends spans to Pydantic Logfire (token from
``LOGFIRE_TOKEN``), ``otel`` exports them over OTLP/HTTP and ``off`` leaves
the app untouched.  The tracing libraries live in the ``observability`` extra
and are imported only for the selected mode.

Spans cover the HTTP routes, the outbound HTTP calls tools make, and (through
``instrument_agents``) every model request of the title and artifact agents.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import FastAPI
from loguru import logger

from agentchat import __version__
from agentchat.config import Settings

# Health checks would otherwise produce one trace every few seconds.
_UNTRACED_PATHS = ("/health",)


def instrument_agents(settings: Settings) -> bool:
    """Whether pydantic-ai agents should emit spans."""
    return settings.observability != "off"


def setup_telemetry(app: FastAPI, settings: Settings) -> None:
    mode = settings.observability
    if mode == "off":
        logger.debug("Tracing disabled")
        return
    try:
        _SETUP[mode](app, settings)
    except ImportError as exc:
        raise RuntimeError(
            f"OBSERVABILITY={mode} needs the observability extra: pip install 'agent-chat-backend[observability]'"
        ) from exc


def _setup_logfire(app: FastAPI, settings: Settings) -> None:
    import logfire

    logfire.configure(
        service_name=settings.otel_service_name,
        service_version=__version__,
        send_to_logfire="if-token-present",
    )
    logfire.instrument_fastapi(app, excluded_urls=",".join(_UNTRACED_PATHS))
    logfire.instrument_httpx()
    logfire.instrument_pydantic_ai()
    logger.info("Tracing to Logfire as {}", settings.otel_service_name)


def _setup_otel(app: FastAPI, settings: Settings) -> None:
    from opentelemetry import trace
    from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
    from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
    from opentelemetry.sdk.resources import Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter, SimpleSpanProcessor

    provider = TracerProvider(
        resource=Resource.create({"service.name": settings.otel_service_name, "service.version": __version__})
    )
    endpoint = f"{settings.otel_exporter_otlp_endpoint.rstrip('/')}/v1/traces"
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
    if settings.otel_console_exporter:
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(provider)

    FastAPIInstrumentor.instrument_app(app, excluded_urls=",".join(_UNTRACED_PATHS))
    logger.info("Tracing over OTLP to {} as {}", endpoint, settings.otel_service_name)


_SETUP: dict[str, Callable[[FastAPI, Settings], None]] = {
    "logfire": _setup_logfire,
    "otel": _setup_otel,
}
