from __future__ import annotations

import time
from datetime import datetime, timezone

from fastapi import APIRouter, Request

from campus_api.core.config import settings
from campus_api.core.rate_limit import get_rate_limit_context

router = APIRouter(tags=["Health"])

_STARTED_AT = time.monotonic()


@router.get("/health")
def health_check(request: Request) -> dict:
    """Health check endpoint.

    Reports service metadata and the rate limiter backend. A limiter running
    on its local fallback is still healthy: it degrades enforcement scope,
    not availability.

    Returns:
        dict: Success envelope with the health payload under ``data``.
    """

    context = get_rate_limit_context(request)
    return {
        "success": True,
        "message": "Service healthy",
        "data": {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": round(time.monotonic() - _STARTED_AT, 3),
            "environment": settings.app_env,
            "version": settings.app.version,
            "services": {"rate_limiter": context.describe()},
        },
    }
