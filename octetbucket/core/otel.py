from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import Lock
from typing import Any

from fastapi import FastAPI

from octetbucket.core.config import Settings

logger = logging.getLogger("octetbucket.api")

_provider_lock = Lock()
_provider: Any | None = None
_sqlalchemy_traced = False


@dataclass(frozen=True)
class OTelSetupResult:
    enabled: bool
    reason: str


def setup_otel(*, app: FastAPI, settings: Settings) -> OTelSetupResult:
    """Instrument ``app`` for OTLP trace export when tracing is switched on.

    The tracer provider is process-wide and created once, so building several
    apps (as the tests do) reuses it. Store calls are traced only for the SQL
    backend; the S3 and memory stores have no instrumentation of their own.
    """
    if not settings.ENABLE_OTEL_TRACING:
        return OTelSetupResult(enabled=False, reason="disabled")

    endpoint = settings.OTEL_EXPORTER_OTLP_TRACES_ENDPOINT.strip()
    if not endpoint:
        logger.warning("Tracing requested without OTEL_EXPORTER_OTLP_TRACES_ENDPOINT; skipping.")
        return OTelSetupResult(enabled=False, reason="missing_endpoint")

    try:
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

        provider = _shared_provider(settings, endpoint=endpoint)
    except ImportError as exc:
        logger.warning("Tracing dependencies are not installed: %s", exc)
        return OTelSetupResult(enabled=False, reason="dependency_missing")

    FastAPIInstrumentor.instrument_app(
        app,
        tracer_provider=provider,
        excluded_urls=settings.OTEL_EXCLUDED_URLS,
    )
    if settings.BLOB_STORE == "sql":
        _trace_blob_database(provider)

    logger.info("Tracing %s to %s", settings.OTEL_SERVICE_NAME, endpoint)
    return OTelSetupResult(enabled=True, reason="enabled")


def _shared_provider(settings: Settings, *, endpoint: str):
    global _provider

    from opentelemetry import trace
    from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
    from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor
    from opentelemetry.sdk.trace.sampling import TraceIdRatioBased

    with _provider_lock:
        if _provider is None:
            provider = TracerProvider(
                resource=Resource.create(
                    {SERVICE_NAME: settings.OTEL_SERVICE_NAME, SERVICE_VERSION: settings.VERSION}
                ),
                sampler=TraceIdRatioBased(settings.OTEL_TRACE_SAMPLE_RATIO),
            )
            exporter = OTLPSpanExporter(
                endpoint=endpoint,
                headers=parse_otlp_headers(settings.OTEL_EXPORTER_OTLP_HEADERS) or None,
            )
            provider.add_span_processor(BatchSpanProcessor(exporter))
            trace.set_tracer_provider(provider)
            _provider = provider
        return _provider


def _trace_blob_database(provider) -> None:
    global _sqlalchemy_traced
    if _sqlalchemy_traced:
        return
    try:
        from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
    except ImportError as exc:
        logger.warning("SQLAlchemy tracing skipped: %s", exc)
        return

    from octetbucket.db.session import get_engine

    SQLAlchemyInstrumentor().instrument(engine=get_engine(), tracer_provider=provider)
    _sqlalchemy_traced = True


def parse_otlp_headers(raw: str) -> dict[str, str]:
    """Parse ``k1=v1,k2=v2`` as used by ``OTEL_EXPORTER_OTLP_HEADERS``."""
    headers: dict[str, str] = {}
    for item in filter(None, (piece.strip() for piece in raw.split(","))):
        name, sep, value = item.partition("=")
        if not sep or not name.strip() or not value.strip():
            logger.warning("Ignoring malformed OTLP header: %s", item)
            continue
        headers[name.strip()] = value.strip()
    return headers
