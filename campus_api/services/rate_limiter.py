"""Rate limiter engine.

Turns a window count into an admit/reject decision for one policy. Backend
failures never escape ``check``: the request is admitted (fail-open) and the
selector is told so later checks use the local store.
"""

from __future__ import annotations

import hashlib
import logging
import math
from dataclasses import dataclass

from campus_api.core.errors import BackendUnavailableError
from campus_api.services.backend_selector import BackendSelector
from campus_api.services.rate_limit_policies import RateLimitPolicy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a rate limit check.

    Attributes:
        allowed: Whether the request may proceed.
        limit: Policy max requests per window.
        count: Requests counted in the window (0 when the backend failed).
        remaining: Requests left in the window (0 when blocked).
        retry_after_seconds: Seconds until the window resets, set when blocked.
        backend: Store that produced the count.
    """

    allowed: bool
    limit: int
    count: int
    remaining: int
    retry_after_seconds: int | None
    backend: str


def hash_identity_key(key: str) -> str:
    """Hash an identity key for logging without exposing addresses or ids."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def retry_after_seconds(reset_in_ms: int, policy: RateLimitPolicy) -> int:
    """Seconds until the window resets, rounded up, within [1, window]."""
    seconds = math.ceil(max(reset_in_ms, 0) / 1000)
    return min(max(seconds, 1), policy.window_seconds)


class RateLimiterEngine:
    """Applies policies against the store chosen by the selector."""

    def __init__(self, selector: BackendSelector) -> None:
        self._selector = selector

    def check(self, policy: RateLimitPolicy, identity_key: str) -> RateLimitDecision:
        """Count one request for ``identity_key`` under ``policy``.

        Args:
            policy: Policy of the route class being accessed.
            identity_key: Composite key from ``build_identity_key``.

        Returns:
            RateLimitDecision; never raises for backend failures.
        """
        store = self._selector.active_store()
        try:
            window = store.increment_and_get(identity_key, policy.window_ms)
        except BackendUnavailableError as exc:
            logger.warning(
                "rate_limit.backend_error",
                extra={
                    "policy": policy.name,
                    "backend": store.name,
                    "error_code": exc.code,
                    "key_hash": hash_identity_key(identity_key),
                },
            )
            self._selector.report_failure(store, exc)
            return RateLimitDecision(
                allowed=True,
                limit=policy.max_requests,
                count=0,
                remaining=policy.max_requests,
                retry_after_seconds=None,
                backend=store.name,
            )

        if window.count > policy.max_requests:
            return RateLimitDecision(
                allowed=False,
                limit=policy.max_requests,
                count=window.count,
                remaining=0,
                retry_after_seconds=retry_after_seconds(window.reset_in_ms, policy),
                backend=store.name,
            )

        return RateLimitDecision(
            allowed=True,
            limit=policy.max_requests,
            count=window.count,
            remaining=policy.max_requests - window.count,
            retry_after_seconds=None,
            backend=store.name,
        )
