from types import SimpleNamespace

from starlette.requests import Request
from starlette.responses import Response

from app.vendops.core.metrics import metrics
from app.vendops.middleware.observability import build_request_log_payload
from tests.report_helpers import report_payload


def test_build_request_log_payload():
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/vendops/reports/roi",
        "headers": [],
        "route": SimpleNamespace(path="/vendops/reports/roi"),
    }
    request = Request(scope)
    request.state.trace_id = "trace-1"
    request.state.error_code = None
    response = Response(status_code=200)

    payload = build_request_log_payload(request=request, response=response, latency_ms=12.3456)

    assert payload["event"] == "http_request"
    assert payload["trace_id"] == "trace-1"
    assert payload["route"] == "/vendops/reports/roi"
    assert payload["method"] == "POST"
    assert payload["status_code"] == 200
    assert payload["latency_ms"] == 12.35
    assert payload["org_id"] is None
    assert payload["error_code"] is None


def test_missing_response_is_logged_as_server_error():
    request = Request({"type": "http", "method": "GET", "path": "/health", "headers": []})
    payload = build_request_log_payload(request=request, response=None, latency_ms=1.0)
    assert payload["route"] == "/health"
    assert payload["status_code"] == 500


def test_report_and_request_counters(client):
    client.post("/vendops/reports/revenue", json=report_payload())

    assert metrics.sample("reports_computed_total", {"report": "revenue"}) == 1.0
    assert (
        metrics.sample(
            "http_requests_total",
            {"route": "/vendops/reports/revenue", "method": "POST", "status": "200"},
        )
        == 1.0
    )


def test_metrics_endpoint_exposes_counters(client):
    client.post("/vendops/reports/revenue", json=report_payload())
    response = client.get("/vendops/ops/metrics")
    assert response.status_code == 200
    assert 'reports_computed_total{report="revenue"} 1.0' in response.text


def test_report_log_event(client, caplog):
    caplog.set_level("INFO", logger="vendops.reports")
    client.post("/vendops/reports/revenue", json=report_payload(), headers={"X-Trace-ID": "trace-log"})
    messages = [record.getMessage() for record in caplog.records if record.name == "vendops.reports"]
    assert any('"event": "report_computed"' in message and '"trace-log"' in message for message in messages)
