"""Redis-backed fixed-window counter store (shared backend).

One MULTI/EXEC transaction per request:

    SET key 0 PX <window> NX   -> creates the window with its expiry on first touch
    INCR key                   -> atomic across every process sharing the server
    PTTL key                   -> remaining window, used for Retry-After

Redis expires the key itself, so no sweep is needed. Every Redis failure is
raised as ``BackendUnavailableError`` so the engine can fail open.
"""

from __future__ import annotations

import logging
from typing import Any

import redis

from campus_api.adapters.rate_limit.base import WindowCount, WindowStore
from campus_api.core.errors import BackendUnavailableError

logger = logging.getLogger(__name__)


class RedisWindowStore(WindowStore):
    """Window store shared by all server instances through Redis."""

    name = "shared"

    def __init__(self, client: Any) -> None:
        """Wrap an existing Redis client.

        Args:
            client: ``redis.Redis`` instance (or compatible). Its socket
                timeouts bound every call made by this store.
        """
        self._client = client

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        socket_timeout: float,
        socket_connect_timeout: float,
    ) -> "RedisWindowStore":
        """Build a store with a bounded-latency client.

        No connection is opened here; the first command (usually ``ping``)
        connects.
        """
        client = redis.Redis.from_url(
            url,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_connect_timeout,
            decode_responses=True,
        )
        return cls(client)

    def ping(self) -> None:
        """Probe the server.

        Raises:
            BackendUnavailableError: If the server cannot be reached.
        """
        try:
            self._client.ping()
        except redis.RedisError as exc:
            raise self._unavailable("ping", exc) from exc

    def increment_and_get(self, key: str, window_ms: int) -> WindowCount:
        if not key:
            raise ValueError("key must be a non-empty string")
        if window_ms < 1:
            raise ValueError("window_ms must be >= 1")

        try:
            pipe = self._client.pipeline(transaction=True)
            pipe.set(key, 0, px=window_ms, nx=True)
            pipe.incr(key)
            pipe.pttl(key)
            _, count, pttl = pipe.execute()

            pttl = int(pttl)
            if pttl < 0:
                # Key survived without an expiry (e.g. written by another tool);
                # re-arm it so the window can lapse.
                self._client.pexpire(key, window_ms)
                pttl = window_ms
        except redis.RedisError as exc:
            raise self._unavailable("increment", exc) from exc

        return WindowCount(count=int(count), reset_in_ms=pttl)

    def close(self) -> None:
        try:
            self._client.close()
        except redis.RedisError as exc:
            logger.debug(
                "rate_limit.shared_close_failed",
                extra={"error_type": type(exc).__name__},
            )

    @staticmethod
    def _unavailable(operation: str, exc: Exception) -> BackendUnavailableError:
        return BackendUnavailableError(
            code="rate_limit_backend_unavailable",
            message=f"Shared rate limit store failed during {operation}",
            details={
                "backend": "shared",
                "context": {"operation": operation, "error_type": type(exc).__name__},
            },
        )
