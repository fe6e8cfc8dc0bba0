"""Process-scoped rate limiting context.

One ``RateLimitContext`` owns the window stores, the backend selector, the
engine and the janitor. The app factory builds it, stores it on
``app.state.rate_limit`` and drives ``startup``/``shutdown`` from the
application lifespan. Tests build a fresh context each.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

from campus_api.adapters.rate_limit.in_memory import LocalWindowStore
from campus_api.adapters.rate_limit.redis_store import RedisWindowStore
from campus_api.core.config import RateLimitSettings, settings
from campus_api.services.backend_selector import BackendSelector, BackendState
from campus_api.services.janitor import LocalStoreJanitor
from campus_api.services.rate_limiter import RateLimiterEngine

logger = logging.getLogger(__name__)


@dataclass
class RateLimitContext:
    """Everything the limiter needs for one server process."""

    config: RateLimitSettings
    local_store: LocalWindowStore
    shared_store: RedisWindowStore | None
    selector: BackendSelector
    engine: RateLimiterEngine
    janitor: LocalStoreJanitor

    def startup(self) -> BackendState:
        """Settle the backend state and start housekeeping."""
        state = self.selector.initialize()
        self.janitor.start()
        return state

    def shutdown(self) -> None:
        self.janitor.stop()
        if self.shared_store is not None:
            self.shared_store.close()

    def describe(self) -> dict[str, Any]:
        """Backend summary for the health endpoint."""
        return {
            "enabled": self.config.enabled,
            "backend": self.selector.state.value,
            "shared_configured": self.selector.shared_configured,
            "local_entries": len(self.local_store),
        }


def create_rate_limit_context(
    config: RateLimitSettings | None = None,
    *,
    shared_store: RedisWindowStore | None = None,
    clock: Callable[[], float] = time.time,
) -> RateLimitContext:
    """Factory function assembling a rate limit context from settings.

    Args:
        config: Rate limit settings; defaults to the global settings.
        shared_store: Pre-built shared store (tests). When omitted one is
            built from ``config.redis_url`` if set.
        clock: Time source for the local store.

    Returns:
        RateLimitContext: Not yet started; call ``startup()``.
    """
    cfg = config or settings.rate_limit

    if shared_store is None and cfg.redis_url:
        shared_store = RedisWindowStore.from_url(
            cfg.redis_url,
            socket_timeout=cfg.redis_socket_timeout_seconds,
            socket_connect_timeout=cfg.redis_connect_timeout_seconds,
        )

    local_store = LocalWindowStore(clock=clock)
    selector = BackendSelector(local_store=local_store, shared_store=shared_store)
    janitor = LocalStoreJanitor(
        local_store,
        interval_seconds=cfg.janitor_interval_seconds,
        should_sweep=lambda: selector.state is BackendState.LOCAL,
    )

    logger.debug(
        "rate_limit.context_created",
        extra={"shared_configured": shared_store is not None},
    )

    return RateLimitContext(
        config=cfg,
        local_store=local_store,
        shared_store=shared_store,
        selector=selector,
        engine=RateLimiterEngine(selector),
        janitor=janitor,
    )
