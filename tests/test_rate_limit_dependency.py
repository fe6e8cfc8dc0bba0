"""HTTP-level tests for the rate limit dependency."""

import pytest
from fastapi import Depends, FastAPI
from starlette.requests import Request

from campus_api.core.auth import create_access_token
from campus_api.core.config import RateLimitSettings
from campus_api.core.rate_limit import build_identity_key, rate_limit, resolve_client_host
from campus_api.services.rate_limit_context import create_rate_limit_context
from campus_api.services.rate_limit_policies import (
    AUTH_POLICY,
    COMMENT_POLICY,
    GENERAL_POLICY,
    UPLOAD_POLICY,
)


def _campus_routes(app: FastAPI) -> None:
    calls = app.state.handler_calls = []

    @app.post("/uploads", dependencies=[Depends(rate_limit(UPLOAD_POLICY))])
    async def create_upload() -> dict:
        calls.append("upload")
        return {"success": True}

    @app.get("/uploads", dependencies=[Depends(rate_limit(GENERAL_POLICY))])
    async def list_uploads() -> dict:
        return {"success": True, "data": []}

    @app.post("/comments", dependencies=[Depends(rate_limit(COMMENT_POLICY))])
    async def create_comment() -> dict:
        return {"success": True}

    @app.post("/auth/login", dependencies=[Depends(rate_limit(AUTH_POLICY))])
    async def login() -> dict:
        return {"success": True}


def test_sixth_upload_is_rejected_with_policy_message(make_client, local_context) -> None:
    client = make_client(local_context, _campus_routes)

    for _ in range(5):
        assert client.post("/uploads").status_code == 200

    resp = client.post("/uploads")

    assert resp.status_code == 429
    assert resp.json() == {
        "success": False,
        "error": UPLOAD_POLICY.rejection_message,
        "retryAfter": 600,
    }
    assert resp.headers["Retry-After"] == "600"
    assert resp.headers["X-RateLimit-Limit"] == "5"
    assert resp.headers["X-RateLimit-Remaining"] == "0"
    assert client.app.state.handler_calls == ["upload"] * 5


def test_admitted_responses_carry_limit_headers(make_client, local_context) -> None:
    client = make_client(local_context, _campus_routes)

    resp = client.post("/comments")

    assert resp.status_code == 200
    assert resp.headers["X-RateLimit-Limit"] == "10"
    assert resp.headers["X-RateLimit-Remaining"] == "9"


def test_headers_can_be_disabled(make_client, fake_time) -> None:
    cfg = RateLimitSettings(redis_url=None, include_headers=False, janitor_interval_seconds=3600)
    client = make_client(create_rate_limit_context(cfg, clock=fake_time.time), _campus_routes)

    for _ in range(5):
        assert "X-RateLimit-Limit" not in client.post("/auth/login").headers
    resp = client.post("/auth/login")

    assert resp.status_code == 429
    assert "X-RateLimit-Limit" not in resp.headers
    assert resp.headers["Retry-After"] == "60"


def test_window_reset_admits_again(make_client, local_context, fake_time) -> None:
    client = make_client(local_context, _campus_routes)
    for _ in range(5):
        client.post("/auth/login")
    assert client.post("/auth/login").status_code == 429

    fake_time.advance(60)

    assert client.post("/auth/login").status_code == 200


def test_policies_keep_separate_budgets(make_client, local_context) -> None:
    client = make_client(local_context, _campus_routes)
    for _ in range(5):
        client.post("/uploads")
    assert client.post("/uploads").status_code == 429

    assert client.get("/uploads").status_code == 200
    assert client.post("/comments").status_code == 200


def test_users_are_limited_independently_of_address(make_client, local_context) -> None:
    client = make_client(local_context, _campus_routes)
    alice = {"Authorization": f"Bearer {create_access_token('alice')}"}
    bob = {"Authorization": f"Bearer {create_access_token('bob')}"}

    for _ in range(5):
        assert client.post("/uploads", headers=alice).status_code == 200
    assert client.post("/uploads", headers=alice).status_code == 429

    assert client.post("/uploads", headers=bob).status_code == 200
    assert client.post("/uploads").status_code == 200


def test_invalid_token_falls_back_to_address(make_client, local_context) -> None:
    client = make_client(local_context, _campus_routes)

    for _ in range(5):
        client.post("/uploads", headers={"Authorization": "Bearer not-a-jwt"})

    assert client.post("/uploads").status_code == 429


def test_disabled_limiter_admits_everything(make_client, fake_time) -> None:
    cfg = RateLimitSettings(redis_url=None, enabled=False, janitor_interval_seconds=3600)
    client = make_client(create_rate_limit_context(cfg, clock=fake_time.time), _campus_routes)

    for _ in range(10):
        resp = client.post("/uploads")
        assert resp.status_code == 200
        assert "X-RateLimit-Limit" not in resp.headers


def test_shared_backend_outage_never_rejects(make_client, shared_context, fake_redis, redis_connection_error) -> None:
    client = make_client(shared_context, _campus_routes)
    for _ in range(3):
        assert client.post("/uploads").status_code == 200

    fake_redis.fail_with = redis_connection_error

    assert client.post("/uploads").status_code == 200
    assert shared_context.selector.state.value == "local"
    # Local store starts counting from scratch.
    for _ in range(5):
        assert client.post("/uploads").status_code == 200
    assert client.post("/uploads").status_code == 429


def test_unreachable_shared_backend_at_startup_runs_local(
    make_client, shared_context, fake_redis, redis_connection_error
) -> None:
    fake_redis.fail_with = redis_connection_error
    client = make_client(shared_context, _campus_routes)

    assert shared_context.selector.state.value == "local"
    for _ in range(5):
        assert client.post("/uploads").status_code == 200
    assert client.post("/uploads").status_code == 429


class TestBuildIdentityKey:
    def test_prefers_subject(self) -> None:
        key = build_identity_key(subject_id="u1", client_host="10.0.0.1", route="upload:/uploads")
        assert key == "rate_limit:user:u1:upload:/uploads"

    def test_uses_client_host(self) -> None:
        key = build_identity_key(subject_id=None, client_host="10.0.0.1", route="general:/feed")
        assert key == "rate_limit:ip:10.0.0.1:general:/feed"

    def test_unknown_origin_fallback(self) -> None:
        key = build_identity_key(subject_id=None, client_host=None, route="auth:/auth/login", prefix="rl")
        assert key == "rl:ip:unknown:auth:/auth/login"


def _request(headers: dict[str, str], client: tuple[str, int] | None = ("10.0.0.9", 5000)) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
        "client": client,
    }
    return Request(scope)


@pytest.mark.parametrize(
    "headers,client,trust,expected",
    [
        ({}, ("10.0.0.9", 5000), False, "10.0.0.9"),
        ({"X-Forwarded-For": "203.0.113.7, 10.0.0.1"}, ("10.0.0.9", 5000), False, "10.0.0.9"),
        ({"X-Forwarded-For": "203.0.113.7, 10.0.0.1"}, ("10.0.0.9", 5000), True, "203.0.113.7"),
        ({}, None, False, None),
    ],
)
def test_resolve_client_host(headers, client, trust, expected) -> None:
    assert resolve_client_host(_request(headers, client), trust_forwarded_for=trust) == expected
