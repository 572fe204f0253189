import json
import logging
import re

from fastapi.testclient import TestClient

from src.api.main import app
from src.api.observability import (
    JsonFormatter,
    caller_id_var,
    correlation_id_var,
    trace_id_from_traceparent,
)


def test_observability_headers_preserve_inbound_correlation_and_trace_id():
    with TestClient(app) as client:
        response = client.get(
            "/health",
            headers={
                "X-Correlation-Id": "corr-inbound-123",
                "X-Request-Id": "req-inbound-123",
                "traceparent": "00-1234567890abcdef1234567890abcdef-0000000000000001-01",
            },
        )

    assert response.status_code == 200
    assert response.headers["X-Correlation-Id"] == "corr-inbound-123"
    assert response.headers["X-Request-Id"] == "req-inbound-123"
    assert response.headers["X-Trace-Id"] == "1234567890abcdef1234567890abcdef"
    assert (
        response.headers["traceparent"] == "00-1234567890abcdef1234567890abcdef-0000000000000001-01"
    )


def test_observability_headers_generate_ids_when_missing():
    with TestClient(app) as client:
        response = client.get("/health")

    assert response.status_code == 200
    assert re.fullmatch(r"corr_[0-9a-f]{12}", response.headers["X-Correlation-Id"])
    assert re.fullmatch(r"req_[0-9a-f]{12}", response.headers["X-Request-Id"])
    assert re.fullmatch(r"[0-9a-f]{32}", response.headers["X-Trace-Id"])
    assert re.fullmatch(
        r"00-[0-9a-f]{32}-0000000000000001-01",
        response.headers["traceparent"],
    )


def test_trace_id_from_traceparent_rejects_malformed_values():
    assert trace_id_from_traceparent(None) is None
    assert trace_id_from_traceparent("garbage") is None
    assert trace_id_from_traceparent("00-short-0000000000000001-01") is None


def test_json_formatter_includes_context_and_extra_fields():
    correlation_token = correlation_id_var.set("corr_test")
    caller_token = caller_id_var.set("usr_sponsor_01")
    try:
        record = logging.LogRecord(
            name="src.core.negotiation.service",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg="proposal.responded",
            args=(),
            exc_info=None,
        )
        record.extra_fields = {"proposal_id": "prp_000000000001", "to_status": "ACCEPTED"}
        payload = json.loads(JsonFormatter().format(record))
    finally:
        correlation_id_var.reset(correlation_token)
        caller_id_var.reset(caller_token)

    assert payload["message"] == "proposal.responded"
    assert payload["service"] == "proposal-negotiation"
    assert payload["correlation_id"] == "corr_test"
    assert payload["caller_id"] == "usr_sponsor_01"
    assert payload["proposal_id"] == "prp_000000000001"
    assert "request_id" not in payload
