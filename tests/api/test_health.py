from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from progress_service.core.errors import TransientError


def test_health_returns_ok(client: TestClient) -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["checks"]["database"] == "ok"
    # In tests, Redis is not configured; should report as such
    assert data["checks"]["redis"] == "not_configured"


def test_ready_returns_200(client: TestClient) -> None:
    resp = client.get("/ready")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ready"}


def test_store_outage_degrades_health_and_fails_ready(
    client: TestClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    store = client.app.state.engine.store
    monkeypatch.setattr(store, "ping", lambda: False)

    health = client.get("/health")
    assert health.status_code == 200
    assert health.json()["status"] == "degraded"
    assert health.json()["checks"]["database"] == "degraded"

    ready = client.get("/ready")
    assert ready.status_code == 503
    assert ready.json() == {"status": "unavailable"}


def test_transient_store_error_is_503_with_retry_after(
    client: TestClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    def unavailable():
        raise TransientError("progress store temporarily unavailable")

    monkeypatch.setattr(client.app.state.engine.store, "begin", unavailable)
    resp = client.post(
        "/v1/progress/register-device",
        json={"device_id": "dev-1", "platform": "ios", "app_version": "1.0.0"},
    )
    assert resp.status_code == 503
    assert resp.headers["retry-after"] == "30"
    assert resp.json()["error"] == "Unavailable"
