import logging

from budget_engine.observability.privacy import describe_document, hash_payload
from budget_engine.observability.telemetry import (
    RequestContextFilter,
    current_request_id,
    load_telemetry_config,
    request_context,
)


def test_hash_payload_is_stable_and_order_independent():
    assert hash_payload({"a": 1, "b": 2}) == hash_payload({"b": 2, "a": 1})
    assert hash_payload("abc") == hash_payload(b"abc")
    assert hash_payload(None) != hash_payload("")
    assert len(hash_payload([1, 2, 3])) == 64


def test_describe_document_reports_counts_without_content():
    payload = {
        "meta": {"donor": "Fondo Secreto", "currency": "PEN"},
        "sections": [{"id": "s1", "name": "Personal"}],
        "lines": [
            {"id": "a", "sectionId": "s1", "description": "Consultor"},
            {"id": "b", "sectionId": "s1", "parentId": "a", "description": "Apoyo"},
        ],
    }

    description = describe_document(payload)

    assert description["section_count"] == 1
    assert description["line_count"] == 2
    assert description["nested_line_count"] == 1
    assert description["currency"] == "PEN"
    assert "Fondo Secreto" not in str(description)


def test_log_filter_attaches_request_and_service_ids():
    record = logging.LogRecord("budget", logging.INFO, __file__, 1, "msg", None, None)
    with request_context(None) as request_id:
        assert current_request_id() == request_id
        assert RequestContextFilter("budget-engine-service").filter(record) is True

    assert record.request_id == request_id
    assert record.service_name == "budget-engine-service"
    assert record.trace_id is None
    assert record.span_id is None
    assert current_request_id() is None


def test_telemetry_config_reads_environment(monkeypatch):
    monkeypatch.setenv("BUDGET_LOG_LEVEL", "debug")
    monkeypatch.setenv("ENABLE_TELEMETRY", "yes")
    monkeypatch.delenv("OTEL_SERVICE_NAME", raising=False)
    monkeypatch.delenv("OTEL_EXPORTER_OTLP_ENDPOINT", raising=False)

    config = load_telemetry_config("budget-engine-service")

    assert config.service_name == "budget-engine-service"
    assert config.log_level == logging.DEBUG
    assert config.traces_enabled is True
    assert config.otlp_endpoint == "http://localhost:4318/v1/traces"


def test_telemetry_config_defaults(monkeypatch):
    for name in ("BUDGET_LOG_LEVEL", "ENABLE_TELEMETRY", "OTEL_SERVICE_NAME", "OTEL_EXPORTER_OTLP_ENDPOINT"):
        monkeypatch.delenv(name, raising=False)

    config = load_telemetry_config("svc")

    assert config.log_level == logging.INFO
    assert config.traces_enabled is False
