"""Tests for the request context middleware.

Every response gets an X-Request-ID header (generated or echoed), and
log lines emitted while handling a request carry the same id.
"""

from __future__ import annotations

import logging
import uuid

import pytest
from fastapi.testclient import TestClient

from tests.conftest import observation


def test_request_id_generated_when_not_provided(client: TestClient) -> None:
    resp = client.get("/health")
    req_id = resp.headers.get("x-request-id")
    assert req_id is not None
    uuid.UUID(req_id)  # raises ValueError if invalid


def test_request_id_echoed_when_provided(client: TestClient) -> None:
    resp = client.get("/health", headers={"X-Request-ID": "player-tab-7"})
    assert resp.headers.get("x-request-id") == "player-tab-7"


def test_request_id_present_on_error_responses(client: TestClient) -> None:
    resp = client.get("/progress/video-1")  # missing userId → 400
    assert resp.status_code == 400
    assert resp.headers.get("x-request-id") is not None


def test_summary_log_line_carries_request_context(
    client: TestClient, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.INFO, logger="app.middleware.request_context"):
        client.post(
            "/progress?userId=user-1",
            json=observation(),
            headers={"X-Request-ID": "req-42"},
        )

    records = [
        r for r in caplog.records if r.name == "app.middleware.request_context"
    ]
    assert records, "expected a request summary log line"
    record = records[-1]
    assert record.request_id == "req-42"
    assert record.path == "/progress"
    assert record.status_code == 200
    assert record.user_id == "user-1"
