"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
Environment defaults are set before any import that might load settings, so
no .env file or real Redis server is involved.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"
os.environ.pop("RATE_LIMIT_REDIS_URL", None)
os.environ.setdefault("AUTH_JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from typing import Callable, Iterator

import pytest
import redis
from fastapi import FastAPI
from fastapi.testclient import TestClient

from campus_api.adapters.rate_limit.in_memory import LocalWindowStore
from campus_api.adapters.rate_limit.redis_store import RedisWindowStore
from campus_api.core.app_factory import create_app
from campus_api.core.config import RateLimitSettings
from campus_api.services.rate_limit_context import RateLimitContext, create_rate_limit_context


class FakeTime:
    """Deterministic clock used to test window expiry."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.current = start

    def time(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


class FakePipeline:
    """Queues commands and runs them back to back on ``execute``."""

    def __init__(self, client: "FakeRedis") -> None:
        self._client = client
        self._commands: list[tuple[str, tuple, dict]] = []

    def __getattr__(self, name: str):
        def queue(*args, **kwargs):
            self._commands.append((name, args, kwargs))
            return self

        return queue

    def execute(self) -> list:
        self._client.raise_if_failing()
        self._client.transactions += 1
        return [getattr(self._client, name)(*args, **kwargs) for name, args, kwargs in self._commands]


class FakeRedis:
    """Just enough of redis.Redis for the window store, with PX expiry."""

    def __init__(self, clock: Callable[[], float]) -> None:
        self._clock = clock
        self.data: dict[str, list] = {}  # key -> [value, expires_at_ms | None]
        self.fail_with: Exception | None = None
        self.transactions = 0
        self.closed = False

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _live(self, key: str) -> list | None:
        entry = self.data.get(key)
        if entry is not None and entry[1] is not None and self._now_ms() >= entry[1]:
            del self.data[key]
            return None
        return entry

    def raise_if_failing(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    def ping(self) -> bool:
        self.raise_if_failing()
        return True

    def pipeline(self, transaction: bool = True) -> FakePipeline:
        return FakePipeline(self)

    def set(self, key: str, value, px: int | None = None, nx: bool = False):
        if nx and self._live(key) is not None:
            return None
        self.data[key] = [int(value), self._now_ms() + px if px else None]
        return True

    def incr(self, key: str) -> int:
        entry = self._live(key)
        if entry is None:
            entry = [0, None]
            self.data[key] = entry
        entry[0] += 1
        return entry[0]

    def pttl(self, key: str) -> int:
        entry = self._live(key)
        if entry is None:
            return -2
        if entry[1] is None:
            return -1
        return entry[1] - self._now_ms()

    def pexpire(self, key: str, ms: int) -> bool:
        self.raise_if_failing()
        entry = self._live(key)
        if entry is None:
            return False
        entry[1] = self._now_ms() + ms
        return True

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_time() -> FakeTime:
    return FakeTime()


@pytest.fixture
def local_store(fake_time: FakeTime) -> LocalWindowStore:
    return LocalWindowStore(clock=fake_time.time)


@pytest.fixture
def fake_redis(fake_time: FakeTime) -> FakeRedis:
    return FakeRedis(clock=fake_time.time)


@pytest.fixture
def rate_limit_settings() -> RateLimitSettings:
    return RateLimitSettings(redis_url=None, janitor_interval_seconds=3600)


@pytest.fixture
def local_context(rate_limit_settings: RateLimitSettings, fake_time: FakeTime) -> RateLimitContext:
    """Local-only context (no shared store configured)."""
    return create_rate_limit_context(rate_limit_settings, clock=fake_time.time)


@pytest.fixture
def shared_context(
    rate_limit_settings: RateLimitSettings,
    fake_time: FakeTime,
    fake_redis: FakeRedis,
) -> RateLimitContext:
    """Context whose shared store talks to ``fake_redis``."""
    return create_rate_limit_context(
        rate_limit_settings,
        shared_store=RedisWindowStore(fake_redis),
        clock=fake_time.time,
    )


@pytest.fixture
def make_client() -> Iterator[Callable[..., TestClient]]:
    """Build a started TestClient around a given context.

    ``routes`` is called with the app before the client starts so tests can
    register their own rate limited endpoints.
    """
    clients: list[TestClient] = []

    def _make(
        context: RateLimitContext,
        routes: Callable[[FastAPI], None] | None = None,
    ) -> TestClient:
        app = create_app(rate_limit_context=context, configure_logs=False)
        if routes is not None:
            routes(app)
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def redis_connection_error() -> Exception:
    return redis.ConnectionError("Connection refused")
