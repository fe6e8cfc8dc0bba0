"""Access token issuing and verification.

Tokens are HS256 JWTs carrying the user id as ``sub``. The rate limiter only
needs the subject of a valid token to key its counters by user instead of by
client address, so verification failures on optional routes are ignored.

Design principles:
- Pure functions for signing/verifying (easy to test without HTTP)
- FastAPI dependencies for request wiring
- Configuration-driven secret, algorithm and lifetime
"""

from __future__ import annotations

import hashlib
import logging
from datetime import datetime, timedelta, timezone
from typing import Annotated

import jwt
from fastapi import Depends, Header

from campus_api.core.config import AuthSettings, settings
from campus_api.core.errors import AuthenticationAppError

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


def create_access_token(subject: str, *, auth_settings: AuthSettings | None = None) -> str:
    """Sign an access token for ``subject``.

    Args:
        subject: User id to embed as the ``sub`` claim.
        auth_settings: Optional settings override (defaults to global settings).

    Returns:
        Encoded JWT string.
    """
    if not subject:
        raise ValueError("subject must be a non-empty string")

    cfg = auth_settings or settings.auth
    now = datetime.now(timezone.utc)
    payload = {
        "sub": subject,
        "iat": now,
        "exp": now + timedelta(seconds=cfg.token_ttl_seconds),
    }
    return jwt.encode(payload, cfg.jwt_secret, algorithm=cfg.jwt_algorithm)


def decode_access_token(token: str, *, auth_settings: AuthSettings | None = None) -> str:
    """Verify ``token`` and return its subject.

    Raises:
        AuthenticationAppError: If the token is invalid, expired or has no subject.
    """
    cfg = auth_settings or settings.auth
    try:
        payload = jwt.decode(
            token,
            cfg.jwt_secret,
            algorithms=[cfg.jwt_algorithm],
            options={"require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise AuthenticationAppError(
            code="token_expired",
            message="Token expired",
        ) from exc
    except jwt.InvalidTokenError as exc:
        raise AuthenticationAppError(
            code="invalid_token",
            message="Invalid or expired access token",
        ) from exc

    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject:
        raise AuthenticationAppError(code="invalid_token", message="Invalid or expired access token")
    return subject


def extract_bearer_token(authorization: str | None) -> str | None:
    """Return the token part of an ``Authorization: Bearer`` header."""
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        return None
    token = authorization[len(BEARER_PREFIX):].strip()
    return token or None


async def get_optional_subject(
    authorization: Annotated[str | None, Header()] = None,
) -> str | None:
    """FastAPI dependency resolving the caller's user id when available.

    Missing or invalid tokens yield None so the route still works for
    anonymous callers.
    """
    token = extract_bearer_token(authorization)
    if token is None:
        return None
    try:
        return decode_access_token(token)
    except AuthenticationAppError as exc:
        logger.debug(
            "auth.optional_token_ignored",
            extra={
                "reason": exc.code,
                "token_hash": hashlib.sha256(token.encode()).hexdigest()[:16],
            },
        )
        return None


async def require_subject(
    subject: Annotated[str | None, Depends(get_optional_subject)],
) -> str:
    """FastAPI dependency for routes that need an authenticated user.

    Raises:
        AuthenticationAppError: 401 when no valid token was supplied.
    """
    if subject is None:
        logger.warning("auth.missing_token")
        raise AuthenticationAppError(
            code="access_token_required",
            message="Access token required",
        )
    return subject
