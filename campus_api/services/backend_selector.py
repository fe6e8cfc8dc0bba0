"""Backend selection and degradation control.

Two states:

    SHARED  -- counters live in the shared store
    LOCAL   -- counters live in the in-process store

SHARED -> LOCAL happens once, on the startup probe failing or on the first
operational error reported by the engine. There is no automatic way back.
``active_store`` only reads the state; it never probes.
"""

from __future__ import annotations

import enum
import logging
import threading

from campus_api.adapters.rate_limit.base import WindowStore
from campus_api.adapters.rate_limit.in_memory import LocalWindowStore
from campus_api.adapters.rate_limit.redis_store import RedisWindowStore
from campus_api.core.errors import BackendUnavailableError

logger = logging.getLogger(__name__)


class BackendState(str, enum.Enum):
    SHARED = "shared"
    LOCAL = "local"


class BackendEvent(str, enum.Enum):
    PROBE_SUCCEEDED = "probe_succeeded"
    PROBE_FAILED = "probe_failed"
    OPERATION_FAILED = "operation_failed"


def next_state(state: BackendState, event: BackendEvent) -> BackendState:
    """Transition function of the selector state machine."""
    if state is BackendState.SHARED and event in (
        BackendEvent.PROBE_FAILED,
        BackendEvent.OPERATION_FAILED,
    ):
        return BackendState.LOCAL
    return state


class BackendSelector:
    """Routes limiter calls to the shared or the local window store."""

    def __init__(
        self,
        *,
        local_store: LocalWindowStore,
        shared_store: RedisWindowStore | None = None,
    ) -> None:
        self._local = local_store
        self._shared = shared_store
        self._lock = threading.Lock()
        self._state = BackendState.SHARED if shared_store is not None else BackendState.LOCAL

    @property
    def state(self) -> BackendState:
        return self._state

    @property
    def shared_configured(self) -> bool:
        return self._shared is not None

    @property
    def local_store(self) -> LocalWindowStore:
        return self._local

    @property
    def shared_store(self) -> RedisWindowStore | None:
        return self._shared

    def initialize(self) -> BackendState:
        """Probe the shared store once and settle the initial state.

        Called at startup. Without a shared store the selector stays LOCAL
        for the life of the process.
        """
        if self._shared is None:
            logger.info("rate_limit.backend_selected", extra={"backend": BackendState.LOCAL.value})
            return self._state

        try:
            self._shared.ping()
        except BackendUnavailableError as exc:
            self.transition(BackendEvent.PROBE_FAILED, exc)
        else:
            self.transition(BackendEvent.PROBE_SUCCEEDED)
            logger.info("rate_limit.backend_selected", extra={"backend": self._state.value})
        return self._state

    def active_store(self) -> WindowStore:
        if self._state is BackendState.SHARED and self._shared is not None:
            return self._shared
        return self._local

    def report_failure(self, store: WindowStore, error: BackendUnavailableError) -> None:
        """Record an operational failure observed on ``store``."""
        if store is self._shared:
            self.transition(BackendEvent.OPERATION_FAILED, error)

    def transition(
        self,
        event: BackendEvent,
        error: BackendUnavailableError | None = None,
    ) -> BackendState:
        """Apply ``event`` and log the switch when the state changes."""
        with self._lock:
            previous = self._state
            self._state = next_state(previous, event)
            changed = self._state is not previous

        if changed:
            logger.warning(
                "rate_limit.backend_switched",
                extra={
                    "from_backend": previous.value,
                    "to_backend": self._state.value,
                    "event": event.value,
                    "error_code": error.code if error else None,
                },
            )
        return self._state
