"""Global exception handlers for consistent error responses.

Every error response uses the same envelope as successful ones:

    {"success": false, "error": "<message>", "code": "<code>", "request_id": "..."}

Design:
- AppError subclasses -> HTTP status by type (400, 401, 429, 503, 500)
- RateLimitExceededError -> 429 with ``retryAfter`` and Retry-After header
- Unexpected Exception -> generic 500 (safety net, nothing leaked)
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from campus_api.core.errors import (
    AppError,
    AuthenticationAppError,
    BackendUnavailableError,
    RateLimitExceededError,
    ValidationAppError,
)
from campus_api.core.logging import get_request_id

logger = logging.getLogger(__name__)


def status_code_for(exc: AppError) -> int:
    """Map a domain error to its HTTP status code."""
    if isinstance(exc, RateLimitExceededError):
        return 429
    if isinstance(exc, AuthenticationAppError):
        return 401
    if isinstance(exc, ValidationAppError):
        return 400
    if isinstance(exc, BackendUnavailableError):
        return 503
    return 500


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceededError) -> JSONResponse:
    """Render a policy rejection.

    The body carries the policy's rejection message and the retry hint; the
    route handler has not run.
    """
    return JSONResponse(
        status_code=429,
        content={
            "success": False,
            "error": exc.message,
            "retryAfter": exc.retry_after_seconds,
        },
        headers=exc.headers,
    )


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle domain application errors with consistent JSON format.

    Args:
        request: FastAPI request object.
        exc: AppError instance (or subclass).

    Returns:
        JSONResponse with appropriate status code and error details.
    """
    if isinstance(exc, RateLimitExceededError):
        return await rate_limit_exceeded_handler(request, exc)

    status_code = status_code_for(exc)

    logger.warning(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "has_details": bool(exc.details),
            "request_id": get_request_id(),
        },
    )

    content = {
        "success": False,
        "error": exc.message,
        "code": exc.code,
        "request_id": get_request_id(),
    }
    if exc.details and isinstance(exc, ValidationAppError):
        content["details"] = exc.details

    return JSONResponse(status_code=status_code, content=content)


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors (safety net).

    Logs the failure for debugging while returning a generic message; no
    stack traces or exception text reach the client.
    """
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
            "request_id": get_request_id(),
        },
    )

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal server error",
            "code": "internal_error",
            "request_id": get_request_id(),
        },
    )


def setup_exception_handlers(app) -> None:
    """Register all exception handlers with FastAPI app.

    Args:
        app: FastAPI application instance.
    """
    app.exception_handler(RateLimitExceededError)(rate_limit_exceeded_handler)
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
