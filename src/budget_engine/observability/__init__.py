"""
Observability helpers for the budget engine (telemetry and log privacy).
"""

from .privacy import describe_document, hash_payload
from .telemetry import (
    CORRELATION_ID_HEADER,
    RequestContextFilter,
    TelemetryConfig,
    configure_logging,
    current_request_id,
    ensure_request_id,
    load_telemetry_config,
    request_context,
    setup_telemetry,
)

__all__ = [
    "describe_document",
    "hash_payload",
    "CORRELATION_ID_HEADER",
    "RequestContextFilter",
    "TelemetryConfig",
    "configure_logging",
    "current_request_id",
    "ensure_request_id",
    "load_telemetry_config",
    "request_context",
    "setup_telemetry",
]
