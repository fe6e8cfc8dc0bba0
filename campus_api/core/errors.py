"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep backward compatibility while encouraging
    consistent shapes across the codebase.
    """

    code: str
    message: str
    hint: str
    field: str
    backend: str
    limit: int
    window_ms: int
    max_requests: int
    retry_after: int
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class AuthenticationAppError(AppError):
    """Raised when authentication fails."""


class PolicyMisconfiguredError(ValidationAppError):
    """Raised when a rate limit policy is built with non-positive limits."""


class BackendUnavailableError(AppError):
    """Raised by a window store when its backend cannot serve the operation.

    The limiter engine recovers from this error (fail-open); it never reaches
    the HTTP layer through a rate limit check.
    """


@dataclass
class RateLimitExceededError(AppError):
    """Raised by the HTTP layer when a request is rejected by a policy."""

    retry_after_seconds: int = 0
    headers: dict[str, str] | None = None
