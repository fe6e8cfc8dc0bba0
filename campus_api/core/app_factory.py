"""Application factory for the FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers and the
rate limiting context) so tests can build isolated instances.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from campus_api.api.routes import health_router, limits_router
from campus_api.core.config import settings
from campus_api.core.exception_handlers import setup_exception_handlers
from campus_api.core.logging import configure_logging
from campus_api.core.middleware import request_id_middleware
from campus_api.core.openapi import apply_openapi_customizations
from campus_api.services.rate_limit_context import RateLimitContext, create_rate_limit_context


def create_app(
    *,
    rate_limit_context: RateLimitContext | None = None,
    configure_logs: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        rate_limit_context: Pre-built limiter context (tests). A new one is
            created from settings when omitted.
        configure_logs: Configure root logging (disabled by tests that
            capture log output themselves).

    Returns:
        Configured FastAPI app. The limiter context is available as
        ``app.state.rate_limit``; its startup probe and janitor run inside the
        application lifespan.
    """
    # Logging first so subsequent init logs are formatted as desired
    if configure_logs:
        configure_logging(settings.log)

    context = rate_limit_context or create_rate_limit_context(settings.rate_limit)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        context.startup()
        try:
            yield
        finally:
            context.shutdown()

    app = FastAPI(
        title=settings.app.name,
        description=(
            "REST backend for the campus community platform. Every route class "
            "is rate limited per user (or per client address) with a shared "
            "Redis counter store and an in-process fallback."
        ),
        version=settings.app.version,
        debug=settings.app.debug,
        lifespan=lifespan,
    )
    app.state.rate_limit = context

    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(limits_router, prefix="/v1")
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
