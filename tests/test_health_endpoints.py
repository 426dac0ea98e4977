import logging

from fastapi.testclient import TestClient

from main import create_app
from routes import health
from services import metrics
from services.observability import RequestIdLogFilter, set_request_id


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200, r.text
    assert r.json()["ok"] is True


def test_healthz_reports_db_state(client, monkeypatch):
    monkeypatch.setattr(health, "_check_db", lambda: (False, "OperationalError"))
    r = client.get("/healthz")
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["ok"] is True
    assert data["db_ok"] is False
    assert data["db_error"] == "OperationalError"


def test_readyz_ready_when_db_tables_and_secret_present(client, monkeypatch):
    monkeypatch.setattr(health, "_check_db", lambda: (True, None))
    monkeypatch.setattr(health, "_check_tables", lambda: True)
    r = client.get("/readyz")
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["ready"] is True
    assert data["paystack_configured"] is True


def test_readyz_not_ready_without_db(client, monkeypatch):
    monkeypatch.setattr(health, "_check_db", lambda: (False, "OperationalError"))
    r = client.get("/readyz")
    data = r.json()
    assert data["ready"] is False
    assert data["tables_ok"] is False


def test_request_id_added_when_missing():
    client = TestClient(create_app())
    resp = client.get("/health")
    assert resp.status_code == 200, resp.text
    assert resp.headers.get("X-Request-ID")


def test_request_id_echoed_when_present():
    client = TestClient(create_app())
    resp = client.get("/health", headers={"X-Request-ID": "client-request-id"})
    assert resp.headers.get("X-Request-ID") == "client-request-id"


def test_request_end_log_includes_method_path_status(caplog):
    client = TestClient(create_app())
    caplog.set_level(logging.INFO, logger="campuseats.http")
    resp = client.get("/health")
    assert resp.status_code == 200, resp.text
    assert any(
        "http_request_end" in record.message
        and "method=GET" in record.message
        and "path=/health" in record.message
        and "status=200" in record.message
        for record in caplog.records
    )


def test_metrics_endpoint_renders_counters(client):
    metrics.increment_withdrawal("ok")
    client.get("/health")
    r = client.get("/metrics")
    assert r.status_code == 200, r.text
    assert r.headers["content-type"].startswith("text/plain")
    assert "# TYPE withdrawals_total counter" in r.text
    assert 'withdrawals_total{result="ok"} 1' in r.text
    assert "http_requests_total" in r.text


def test_log_records_carry_request_id():
    record = logging.LogRecord("campuseats.test", logging.INFO, __file__, 1, "hello", None, None)
    set_request_id("req-123")
    try:
        assert RequestIdLogFilter().filter(record) is True
    finally:
        set_request_id(None)
    assert record.request_id == "req-123"

    outside = logging.LogRecord("campuseats.test", logging.INFO, __file__, 1, "hello", None, None)
    RequestIdLogFilter().filter(outside)
    assert outside.request_id == "-"
