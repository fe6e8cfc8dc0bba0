from __future__ import annotations

import pytest


@pytest.fixture
def client(make_client, local_context):
    return make_client(local_context)


def test_preserves_incoming_request_id_header(client):
    incoming_id = "test-request-id-123"
    resp = client.get("/health", headers={"X-Request-ID": incoming_id})

    assert resp.status_code == 200
    assert resp.headers.get("X-Request-ID") == incoming_id


def test_generates_request_id_when_missing(client):
    resp = client.get("/health")

    assert resp.status_code == 200
    generated = resp.headers.get("X-Request-ID")
    assert generated
    assert resp.headers.get("X-Request-Duration-ms") is not None


def test_rejected_requests_also_carry_request_id(client):
    for _ in range(60):
        assert client.get("/v1/rate-limits").status_code == 200

    resp = client.get("/v1/rate-limits", headers={"X-Request-ID": "req-429"})

    assert resp.status_code == 429
    assert resp.headers.get("X-Request-ID") == "req-429"
