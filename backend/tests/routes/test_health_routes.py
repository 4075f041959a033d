from __future__ import annotations


def test_health_reports_service_and_headers(client):
    response = client.get("/api/v1/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["service"] == "lumexa-booking-core"
    assert body["timestamp"].endswith("Z")
    assert response.headers["X-Site-Mode"] == "local"
    assert "X-Commit-Sha" in response.headers


def test_health_reads_commit_sha_from_env(client, monkeypatch):
    monkeypatch.delenv("RENDER_GIT_COMMIT", raising=False)
    monkeypatch.setenv("GIT_SHA", "abc123")
    assert client.get("/api/v1/health").json()["git_sha"] == "abc123"


def test_unversioned_health_endpoints(client):
    assert client.get("/health").status_code == 200
    assert client.get("/health/lite").json() == {"status": "ok"}


def test_root(client):
    body = client.get("/").json()
    assert set(body) == {"message", "version"}


def test_prometheus_exposition(client):
    response = client.get("/api/v1/metrics/prometheus")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert b"lumexa_webhook_events_total" in response.content
    assert b"lumexa_payment_transitions_total" in response.content


def test_unknown_route_is_problem_document(client):
    response = client.get("/api/v1/nope")

    assert response.status_code == 404
    assert response.headers["content-type"].startswith("application/problem+json")
    assert response.json()["instance"] == "/api/v1/nope"
