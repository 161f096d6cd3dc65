import json
import logging
from types import SimpleNamespace

from starlette.requests import Request
from starlette.responses import Response

from app.evstock.core.metrics import metrics
from app.evstock.core.roles import EMV_STAFF
from app.evstock.middleware.observability import build_request_log_payload
from tests.evstock_helpers import BASE_PATH, auth_headers, create_network


def test_build_request_log_payload():
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/evstock/stock-transfer-requests",
        "headers": [],
        "route": SimpleNamespace(path="/evstock/stock-transfer-requests"),
    }
    request = Request(scope)
    request.state.trace_id = "trace-1"
    request.state.company_id = "company-1"
    request.state.user_id = "user-1"
    request.state.error_code = None
    response = Response(status_code=200)

    payload = build_request_log_payload(request=request, response=response, latency_ms=12.3456)

    assert payload["event"] == "http_request"
    assert payload["trace_id"] == "trace-1"
    assert payload["company_id"] == "company-1"
    assert payload["user_id"] == "user-1"
    assert payload["route"] == "/evstock/stock-transfer-requests"
    assert payload["method"] == "GET"
    assert payload["status_code"] == 200
    assert payload["latency_ms"] == 12.35
    assert payload["error_code"] is None


def test_request_log_line_carries_route_template_and_error_code(client, db_session, caplog):
    network = create_network(db_session)
    caplog.set_level(logging.INFO, logger="evstock.request")

    response = client.get(f"{BASE_PATH}/not-an-id", headers=auth_headers(EMV_STAFF, network.company))

    assert response.status_code == 400
    lines = [json.loads(record.getMessage()) for record in caplog.records if record.name == "evstock.request"]
    assert lines[-1]["route"] == "/evstock/stock-transfer-requests/{request_id}"
    assert lines[-1]["status_code"] == 400
    assert lines[-1]["error_code"] == "BAD_REQUEST"
    assert lines[-1]["company_id"] == str(network.company.id)


def test_metrics_endpoint_exposes_http_counters(client):
    client.get("/health")

    response = client.get("/evstock/ops/metrics")

    assert response.status_code == 200
    if metrics.enabled:
        assert "http_requests_total" in response.text
