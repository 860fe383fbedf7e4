"""Tests for the request context middleware.

Verifies that every response gets an X-Request-ID header (generated or
echoed) and that log lines emitted while handling the request carry it.
"""

from __future__ import annotations

import logging
import uuid

import pytest
from fastapi.testclient import TestClient

from progress_service.middleware.request_context import (
    _RequestContextFilter,
    request_id_var,
)


def test_request_id_generated_when_not_provided(client: TestClient) -> None:
    resp = client.get("/health")
    req_id = resp.headers.get("x-request-id")
    assert req_id is not None
    uuid.UUID(req_id)  # raises ValueError if invalid


def test_request_id_echoed_when_provided(client: TestClient) -> None:
    custom_id = "my-custom-request-id-123"
    resp = client.get("/health", headers={"X-Request-ID": custom_id})
    assert resp.headers.get("x-request-id") == custom_id


def test_request_id_present_on_error_responses(client: TestClient) -> None:
    resp = client.get("/v1/teachers/teacher-missing/students")
    assert resp.status_code == 404
    assert resp.headers.get("x-request-id") is not None


def test_service_logs_carry_the_request_id(
    client: TestClient, caplog: pytest.LogCaptureFixture
) -> None:
    caplog.handler.addFilter(_RequestContextFilter())
    with caplog.at_level(logging.INFO, logger="progress_service"):
        client.post(
            "/v1/progress/register-device",
            json={"device_id": "dev-1", "platform": "ios", "app_version": "1.0.0"},
            headers={"X-Request-ID": "req-register-1"},
        )

    device_lines = [r for r in caplog.records if "dev-1" in r.getMessage()]
    assert device_lines
    assert all(r.request_id == "req-register-1" for r in device_lines)


def test_filter_falls_back_outside_a_request() -> None:
    record = logging.LogRecord("x", logging.INFO, "x.py", 1, "msg", (), None)
    assert _RequestContextFilter().filter(record) is True
    assert record.request_id == request_id_var.get()
    assert record.request_id == "-"
