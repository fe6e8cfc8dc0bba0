"""OpenAPI customization.

Adds the bearer token security scheme, tag metadata and documents the shared
429 response on every rate limited operation.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

RATE_LIMITED_RESPONSE: Dict[str, Any] = {
    "description": "Rate limit exceeded for this route class.",
    "headers": {
        "Retry-After": {
            "description": "Seconds until the current window resets.",
            "schema": {"type": "integer"},
        },
    },
    "content": {
        "application/json": {
            "example": {
                "success": False,
                "error": "Too many requests, please try again later.",
                "retryAfter": 42,
            }
        }
    },
}


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation.

    - Injects a ``BearerAuth`` security scheme (optional on every route)
    - Adds a 429 response to operations outside the health endpoint
    - Adds tags metadata if not present
    """

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema

        schema = original_openapi()

        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "BearerAuth",
            {
                "type": "http",
                "scheme": "bearer",
                "bearerFormat": "JWT",
                "description": "Optional access token; limits apply per user when present.",
            },
        )

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        for tag in (
            {"name": "Rate limits", "description": "Published per-route-class limits."},
            {"name": "Health", "description": "Liveness and limiter backend status."},
        ):
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for path, methods in schema.get("paths", {}).items():
            if path.endswith("/health"):
                continue
            for method_obj in methods.values():
                if isinstance(method_obj, dict):
                    method_obj.setdefault("security", [{"BearerAuth": []}, {}])
                    method_obj.setdefault("responses", {}).setdefault("429", RATE_LIMITED_RESPONSE)

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
