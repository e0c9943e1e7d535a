from __future__ import annotations

from dataclasses import dataclass
import logging
import os
from typing import Any
from urllib.parse import unquote

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.sdk.resources import DEPLOYMENT_ENVIRONMENT, SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased
from opentelemetry.trace import Span

from cuepoint.core.config import Settings

_BASE_LOG_RECORD_FACTORY = logging.getLogRecordFactory()
_LOG_CORRELATION_INSTALLED = False
_HTTPX_INSTRUMENTOR = HTTPXClientInstrumentor()
# Health probes and the OpenAPI document are noise in traces.
EXCLUDED_URLS = "healthz,openapi.json,docs"
ROUTE_AREAS = ("company", "admin")


@dataclass(slots=True)
class TelemetryRuntime:
    enabled: bool
    provider: TracerProvider | None


def configure_api_logging(level: int = logging.INFO) -> None:
    _install_log_correlation()
    if logging.getLogger().handlers:
        return
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s trace_id=%(trace_id)s span_id=%(span_id)s %(message)s",
    )


def setup_api_telemetry(app: FastAPI, settings: Settings) -> TelemetryRuntime:
    if not settings.otel_enabled:
        return TelemetryRuntime(enabled=False, provider=None)

    if settings.otel_log_correlation:
        _install_log_correlation()

    provider = TracerProvider(
        resource=Resource.create(
            {
                SERVICE_NAME: settings.otel_service_name,
                DEPLOYMENT_ENVIRONMENT: settings.environment,
            }
        ),
        sampler=ParentBased(TraceIdRatioBased(settings.otel_trace_sample_ratio)),
    )
    exporter = _build_exporter(settings)
    if exporter is not None:
        provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)
    FastAPIInstrumentor.instrument_app(
        app,
        tracer_provider=provider,
        excluded_urls=EXCLUDED_URLS,
        server_request_hook=_server_request_hook,
    )
    # Supabase auth and storage calls show up as children of the request span.
    _HTTPX_INSTRUMENTOR.instrument(tracer_provider=provider)
    return TelemetryRuntime(enabled=True, provider=provider)


def shutdown_api_telemetry(app: FastAPI, runtime: TelemetryRuntime) -> None:
    if not runtime.enabled:
        return
    FastAPIInstrumentor.uninstrument_app(app)
    _HTTPX_INSTRUMENTOR.uninstrument()
    if runtime.provider is not None:
        runtime.provider.force_flush()
        runtime.provider.shutdown()


def route_area(path: str) -> str | None:
    first_segment = path.lstrip("/").split("/", maxsplit=1)[0]
    if first_segment in ROUTE_AREAS:
        return first_segment
    return None


def _server_request_hook(span: Span, scope: dict[str, Any]) -> None:
    if span is None or not span.is_recording():
        return
    area = route_area(scope.get("path", ""))
    if area is not None:
        span.set_attribute("cuepoint.area", area)
    headers = dict(scope.get("headers") or [])
    span.set_attribute("cuepoint.edit_session_header", b"x-edit-session" in headers)


def _build_exporter(settings: Settings) -> OTLPSpanExporter | None:
    endpoint = (
        settings.otel_exporter_otlp_endpoint
        or os.getenv("OTEL_EXPORTER_OTLP_TRACES_ENDPOINT")
        or os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    )
    if not endpoint:
        logging.getLogger(__name__).info(
            "OTel exporter endpoint not set; spans remain local-only for service=%s",
            settings.otel_service_name,
        )
        return None

    headers = parse_otlp_headers(settings.otel_exporter_otlp_headers or os.getenv("OTEL_EXPORTER_OTLP_HEADERS"))
    return OTLPSpanExporter(endpoint=endpoint, headers=headers or None)


def parse_otlp_headers(raw: str | None) -> dict[str, str]:
    """Parse ``key=value`` pairs; values are percent-decoded as OTLP env vars allow."""
    if not raw:
        return {}
    parsed: dict[str, str] = {}
    for item in raw.split(","):
        key, separator, value = item.partition("=")
        if not separator:
            continue
        stripped_key = key.strip()
        if stripped_key:
            parsed[stripped_key] = unquote(value.strip())
    return parsed


def _install_log_correlation() -> None:
    global _LOG_CORRELATION_INSTALLED
    if _LOG_CORRELATION_INSTALLED:
        return

    def record_factory(*args: object, **kwargs: object) -> logging.LogRecord:
        record = _BASE_LOG_RECORD_FACTORY(*args, **kwargs)
        context = trace.get_current_span().get_span_context()
        record.trace_id = format(context.trace_id, "032x") if context.is_valid else "0" * 32
        record.span_id = format(context.span_id, "016x") if context.is_valid else "0" * 16
        return record

    logging.setLogRecordFactory(record_factory)
    _LOG_CORRELATION_INSTALLED = True
