"""OpenTelemetry tracing for the API, the quote providers and market data refreshes."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SimpleSpanProcessor, SpanExporter
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased
from opentelemetry.semconv.resource import ResourceAttributes
from sqlalchemy.ext.asyncio import AsyncEngine

from portfolio_tracker.config import AppSettings

logger = logging.getLogger(__name__)

_TRACER_PROVIDER: TracerProvider | None = None


def _build_resource(settings: AppSettings) -> Resource:
    attributes: dict[str, Any] = {
        ResourceAttributes.SERVICE_NAME: settings.telemetry_service_name or settings.app_name,
        ResourceAttributes.SERVICE_NAMESPACE: "portfolio-tracker",
        "portfolio.base_currency": settings.base_currency,
        "portfolio.timezone": settings.timezone,
    }
    return Resource.create(attributes)


def get_tracer(name: str) -> trace.Tracer:
    """Tracer bound to the configured provider, or a no-op one when tracing is off."""

    return trace.get_tracer(name, tracer_provider=_TRACER_PROVIDER)


def setup_telemetry(
    app: FastAPI,
    settings: AppSettings,
    engine: AsyncEngine | None = None,
    *,
    span_exporter: SpanExporter | None = None,
) -> bool:
    """Configure span export and instrument FastAPI, httpx and SQLAlchemy.

    ``span_exporter`` replaces the OTLP exporter; spans are then exported as
    soon as they end. Returns ``True`` when tracing is active after the call.
    """

    global _TRACER_PROVIDER  # noqa: PLW0603 - single initialisation guard

    if not settings.telemetry_enabled:
        logger.info("Telemetry disabled via configuration")
        return False

    if _TRACER_PROVIDER is None:
        _TRACER_PROVIDER = _configure_tracing(settings, span_exporter)
        # Refresh workers call the quote providers through httpx
        HTTPXClientInstrumentor().instrument(tracer_provider=_TRACER_PROVIDER)
        if engine is not None:
            SQLAlchemyInstrumentor().instrument(
                engine=engine.sync_engine,
                tracer_provider=_TRACER_PROVIDER,
            )

    FastAPIInstrumentor.instrument_app(app, tracer_provider=_TRACER_PROVIDER)
    logger.info("Telemetry initialised and instrumentation enabled")
    return True


def shutdown_telemetry(app: FastAPI | None = None) -> None:
    """Flush pending spans and remove the instrumentation installed by :func:`setup_telemetry`."""

    global _TRACER_PROVIDER  # noqa: PLW0603

    if _TRACER_PROVIDER is None:
        return
    if app is not None:
        FastAPIInstrumentor.uninstrument_app(app)
    HTTPXClientInstrumentor().uninstrument()
    SQLAlchemyInstrumentor().uninstrument()
    _TRACER_PROVIDER.shutdown()
    _TRACER_PROVIDER = None


# Helpers

def _configure_tracing(settings: AppSettings, span_exporter: SpanExporter | None) -> TracerProvider:
    sampler = ParentBased(TraceIdRatioBased(settings.telemetry_sample_ratio))
    tracer_provider = TracerProvider(resource=_build_resource(settings), sampler=sampler)
    if span_exporter is not None:
        tracer_provider.add_span_processor(SimpleSpanProcessor(span_exporter))
        return tracer_provider

    options: dict[str, Any] = {"insecure": settings.telemetry_otlp_insecure}
    if settings.telemetry_otlp_endpoint:
        options["endpoint"] = settings.telemetry_otlp_endpoint
    tracer_provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(**options)))
    return tracer_provider


__all__ = ["get_tracer", "setup_telemetry", "shutdown_telemetry"]
