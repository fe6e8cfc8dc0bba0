"""Rate limit policies per route class.

Policies are immutable and validated on construction, so a bad value fails at
import time instead of on a request.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from campus_api.core.errors import PolicyMisconfiguredError


@dataclass(frozen=True)
class RateLimitPolicy:
    """Fixed-window limit for one route class.

    Attributes:
        name: Route class name; part of every identity key so that policies
            never share counters.
        window_ms: Window length in milliseconds.
        max_requests: Requests admitted per window and identity.
        rejection_message: Message returned to the client on rejection.
    """

    name: str
    window_ms: int
    max_requests: int
    rejection_message: str

    def __post_init__(self) -> None:
        if not self.name:
            raise PolicyMisconfiguredError(
                code="rate_limit_policy_invalid",
                message="Rate limit policy name must be a non-empty string",
                details={"field": "name"},
            )
        if self.window_ms < 1:
            raise PolicyMisconfiguredError(
                code="rate_limit_policy_invalid",
                message=f"Rate limit policy '{self.name}' needs window_ms >= 1",
                details={"field": "window_ms", "window_ms": self.window_ms},
            )
        if self.max_requests < 1:
            raise PolicyMisconfiguredError(
                code="rate_limit_policy_invalid",
                message=f"Rate limit policy '{self.name}' needs max_requests >= 1",
                details={"field": "max_requests", "max_requests": self.max_requests},
            )

    @property
    def window_seconds(self) -> int:
        return math.ceil(self.window_ms / 1000)


GENERAL_POLICY = RateLimitPolicy(
    name="general",
    window_ms=60_000,
    max_requests=60,
    rejection_message="Too many requests, please try again later.",
)

UPLOAD_POLICY = RateLimitPolicy(
    name="upload",
    window_ms=600_000,
    max_requests=5,
    rejection_message="Upload limit exceeded, please wait before uploading again.",
)

AUTH_POLICY = RateLimitPolicy(
    name="auth",
    window_ms=60_000,
    max_requests=5,
    rejection_message="Too many authentication attempts, please try again later.",
)

COMMENT_POLICY = RateLimitPolicy(
    name="comment",
    window_ms=60_000,
    max_requests=10,
    rejection_message="Comment limit exceeded, please wait before posting again.",
)

MARKETPLACE_POLICY = RateLimitPolicy(
    name="marketplace",
    window_ms=3_600_000,
    max_requests=5,
    rejection_message=(
        "Marketplace listing limit exceeded, please wait before creating another listing."
    ),
)

POLICIES: dict[str, RateLimitPolicy] = {
    policy.name: policy
    for policy in (
        GENERAL_POLICY,
        UPLOAD_POLICY,
        AUTH_POLICY,
        COMMENT_POLICY,
        MARKETPLACE_POLICY,
    )
}
