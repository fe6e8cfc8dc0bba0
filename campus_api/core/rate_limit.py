"""Rate limiting dependency for FastAPI routes.

This module wires the limiter engine into the HTTP layer.

Usage:
    @router.post("/uploads", dependencies=[Depends(rate_limit(UPLOAD_POLICY))])

Keying strategy:
- Authenticated callers are limited per user id (from the bearer token).
- Anonymous callers are limited per client address, or the literal
  ``unknown`` when the address is not available.
- The policy name and route path are part of the key, so each route class
  keeps its own budget for the same caller.
"""

from __future__ import annotations

import logging
from typing import Annotated, Awaitable, Callable

from fastapi import Depends, Request, Response
from starlette.concurrency import run_in_threadpool

from campus_api.core.auth import get_optional_subject
from campus_api.core.errors import RateLimitExceededError
from campus_api.services.rate_limit_context import RateLimitContext
from campus_api.services.rate_limit_policies import RateLimitPolicy
from campus_api.services.rate_limiter import RateLimitDecision, hash_identity_key

logger = logging.getLogger(__name__)

UNKNOWN_ORIGIN = "unknown"


def get_rate_limit_context(request: Request) -> RateLimitContext:
    """Return the context created by the app factory."""
    return request.app.state.rate_limit


def build_identity_key(
    *,
    subject_id: str | None,
    client_host: str | None,
    route: str,
    prefix: str = "rate_limit",
) -> str:
    """Compose the identity key for one caller and route class.

    Args:
        subject_id: Authenticated user id, if any.
        client_host: Connection origin address, if any.
        route: Route discriminator (policy name and route path).
        prefix: Key namespace.

    Returns:
        str: ``<prefix>:user:<id>:<route>`` or ``<prefix>:ip:<host>:<route>``.
    """
    if subject_id:
        identity = f"user:{subject_id}"
    else:
        identity = f"ip:{client_host or UNKNOWN_ORIGIN}"
    return f"{prefix}:{identity}:{route}"


def resolve_client_host(request: Request, *, trust_forwarded_for: bool = False) -> str | None:
    if trust_forwarded_for:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            first_hop = forwarded.split(",")[0].strip()
            if first_hop:
                return first_hop
    return request.client.host if request.client else None


def route_discriminator(request: Request, policy: RateLimitPolicy) -> str:
    route = request.scope.get("route")
    path = getattr(route, "path", None) or request.url.path
    return f"{policy.name}:{path}"


def _rate_limit_headers(decision: RateLimitDecision) -> dict[str, str]:
    return {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
    }


def rate_limit(policy: RateLimitPolicy) -> Callable[..., Awaitable[RateLimitDecision | None]]:
    """Build a FastAPI dependency enforcing ``policy``.

    The dependency counts the request and raises ``RateLimitExceededError``
    (rendered as HTTP 429) when the caller is over budget. Limiter backend
    failures admit the request.

    Args:
        policy: Policy of the protected route class.

    Returns:
        Dependency callable returning the decision (None when disabled).
    """

    async def enforce_rate_limit(
        request: Request,
        response: Response,
        subject_id: Annotated[str | None, Depends(get_optional_subject)],
    ) -> RateLimitDecision | None:
        context = get_rate_limit_context(request)
        if not context.config.enabled:
            return None

        key = build_identity_key(
            subject_id=subject_id,
            client_host=resolve_client_host(
                request, trust_forwarded_for=context.config.trust_forwarded_for
            ),
            route=route_discriminator(request, policy),
            prefix=context.config.key_prefix,
        )
        decision = await run_in_threadpool(context.engine.check, policy, key)

        log_extra = {
            "policy": policy.name,
            "key_type": "user" if subject_id else "ip",
            "key_hash": hash_identity_key(key),
            "backend": decision.backend,
            "limit": decision.limit,
            "remaining": decision.remaining,
            "window_ms": policy.window_ms,
        }

        if decision.allowed:
            logger.debug("rate_limit.allowed", extra=log_extra)
            if context.config.include_headers:
                response.headers.update(_rate_limit_headers(decision))
            return decision

        retry_after = decision.retry_after_seconds or policy.window_seconds
        logger.warning("rate_limit.exceeded", extra={**log_extra, "retry_after_s": retry_after})

        headers = {"Retry-After": str(retry_after)}
        if context.config.include_headers:
            headers.update(_rate_limit_headers(decision))

        raise RateLimitExceededError(
            code="rate_limit_exceeded",
            message=policy.rejection_message,
            retry_after_seconds=retry_after,
            headers=headers,
        )

    enforce_rate_limit.__name__ = f"enforce_{policy.name}_rate_limit"
    return enforce_rate_limit
