"""
Logging and tracing bootstrap for the budget engine service.

Log records are JSON lines carrying the service name and the id of the request
being served; engine modules log plain dict events (`{"event": ...}`) and the
formatter merges them into the record. OpenTelemetry tracing is opt-in through
`ENABLE_TELEMETRY`, in which case records also carry trace and span ids.
"""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Iterator, Optional, Tuple
from uuid import uuid4

from fastapi import FastAPI, Request
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from pythonjsonlogger import jsonlogger

CORRELATION_ID_HEADER = "x-request-id"
ENABLE_TELEMETRY_ENV_VAR = "ENABLE_TELEMETRY"
LOG_LEVEL_ENV_VAR = "BUDGET_LOG_LEVEL"
DEFAULT_OTLP_ENDPOINT = "http://localhost:4318/v1/traces"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s %(service_name)s %(request_id)s %(trace_id)s %(span_id)s"

_logging_configured = False
_request_id_ctx_var: ContextVar[Optional[str]] = ContextVar("budget_request_id", default=None)


@dataclass(frozen=True, slots=True)
class TelemetryConfig:
    service_name: str
    log_level: int = logging.INFO
    traces_enabled: bool = False
    otlp_endpoint: str = DEFAULT_OTLP_ENDPOINT


def load_telemetry_config(service_name: str) -> TelemetryConfig:
    """Read the logging and tracing switches from the environment."""
    level_name = os.getenv(LOG_LEVEL_ENV_VAR, "INFO").strip().upper()
    return TelemetryConfig(
        service_name=os.getenv("OTEL_SERVICE_NAME") or service_name,
        log_level=getattr(logging, level_name, logging.INFO),
        traces_enabled=_parse_bool(os.getenv(ENABLE_TELEMETRY_ENV_VAR)),
        otlp_endpoint=os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT") or DEFAULT_OTLP_ENDPOINT,
    )


def setup_telemetry(app: FastAPI, service_name: str) -> TelemetryConfig:
    """Install JSON logging and, when enabled, FastAPI and logging instrumentation."""
    config = load_telemetry_config(service_name)
    configure_logging(config)
    if config.traces_enabled:
        _configure_tracing(config)
        FastAPIInstrumentor.instrument_app(app)
        LoggingInstrumentor().instrument(set_logging_format=False)
    return config


def configure_logging(config: TelemetryConfig) -> None:
    """Install the JSON log handler once per process."""
    global _logging_configured
    if _logging_configured:
        return

    handler = logging.StreamHandler()
    handler.setFormatter(jsonlogger.JsonFormatter(LOG_FORMAT))
    handler.addFilter(RequestContextFilter(config.service_name, traces_enabled=config.traces_enabled))
    logging.basicConfig(level=config.log_level, handlers=[handler], force=True)
    _logging_configured = True


def ensure_request_id(request: Optional[Request]) -> str:
    """Reuse the inbound `x-request-id` (or one already on the request state), else mint a UUID4."""
    if request is not None:
        existing = request.headers.get(CORRELATION_ID_HEADER) or getattr(request.state, "request_id", None)
        if existing:
            request.state.request_id = existing
            return existing

    request_id = str(uuid4())
    if request is not None:
        request.state.request_id = request_id
    return request_id


@contextmanager
def request_context(request: Optional[Request]) -> Iterator[str]:
    """Bind the request id for log records emitted while the block runs."""
    request_id = ensure_request_id(request)
    token = _request_id_ctx_var.set(request_id)
    try:
        yield request_id
    finally:
        _request_id_ctx_var.reset(token)


def current_request_id() -> Optional[str]:
    return _request_id_ctx_var.get()


class RequestContextFilter(logging.Filter):
    """Stamps service name, request id and (with tracing) trace/span ids on each record."""

    def __init__(self, service_name: str, *, traces_enabled: bool = False) -> None:
        super().__init__()
        self._service_name = service_name
        self._traces_enabled = traces_enabled

    def filter(self, record: logging.LogRecord) -> bool:
        record.service_name = self._service_name
        record.request_id = _request_id_ctx_var.get()
        record.trace_id, record.span_id = _current_trace_ids() if self._traces_enabled else (None, None)
        return True


def _current_trace_ids() -> Tuple[Optional[str], Optional[str]]:
    span_context = trace.get_current_span().get_span_context()
    if not span_context.is_valid:
        return None, None
    return format(span_context.trace_id, "032x"), format(span_context.span_id, "016x")


def _configure_tracing(config: TelemetryConfig) -> None:
    if isinstance(trace.get_tracer_provider(), TracerProvider):
        return
    provider = TracerProvider(resource=Resource.create({SERVICE_NAME: config.service_name}))
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=config.otlp_endpoint)))
    trace.set_tracer_provider(provider)


def _parse_bool(raw: Optional[str]) -> bool:
    return (raw or "").strip().lower() in {"1", "true", "yes", "on"}
