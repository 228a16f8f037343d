"""
Tests for health probes, metrics exposure and request logging headers.
"""


def test_live(client):
    response = client.get("/health/live")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "reason": None}


def test_ready(client):
    response = client.get("/health/ready")

    assert response.status_code == 200
    assert response.json()["status"] == "ready"


def test_ready_when_store_down(client, monkeypatch):
    monkeypatch.setattr(client.app.state.database, "check_health", lambda: False)

    response = client.get("/health/ready")

    assert response.status_code == 503
    assert response.json() == {"status": "not_ready", "reason": "Database not reachable"}


def test_request_id_header(client):
    response = client.get("/health/live")
    assert response.headers["X-Request-ID"]


def test_metrics_exposed(client):
    client.get("/api/whatsapp/messages")

    response = client.get("/metrics")

    assert response.status_code == 200
    assert "http_requests_total" in response.text
    assert 'message_list_reads_total{result="ok"}' in response.text
