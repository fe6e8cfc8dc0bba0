"""Published rate limits, so clients can pace themselves."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from campus_api.core.rate_limit import rate_limit
from campus_api.services.rate_limit_policies import GENERAL_POLICY, POLICIES

router = APIRouter(tags=["Rate limits"])


@router.get("/rate-limits", dependencies=[Depends(rate_limit(GENERAL_POLICY))])
async def list_rate_limits() -> dict:
    return {
        "success": True,
        "data": [
            {
                "name": policy.name,
                "windowMs": policy.window_ms,
                "maxRequests": policy.max_requests,
                "message": policy.rejection_message,
            }
            for policy in POLICIES.values()
        ],
    }
