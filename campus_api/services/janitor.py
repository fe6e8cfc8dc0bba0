"""Background sweep of expired local window records.

Expired records are already ignored on their next touch; the sweep only keeps
the local store from growing with keys that are never seen again.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable

from campus_api.adapters.rate_limit.in_memory import LocalWindowStore

logger = logging.getLogger(__name__)


class LocalStoreJanitor:
    """Owned daemon thread calling ``LocalWindowStore.sweep_expired``.

    ``start`` is idempotent and ``stop`` joins the thread, so application
    shutdown (and each test) ends it deterministically.
    """

    def __init__(
        self,
        store: LocalWindowStore,
        *,
        interval_seconds: float = 60.0,
        should_sweep: Callable[[], bool] | None = None,
    ) -> None:
        """Initialize the janitor.

        Args:
            store: Local store to sweep.
            interval_seconds: Delay between sweeps.
            should_sweep: Optional predicate; a pass is skipped when it returns
                False (the local store is not in use).
        """
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self._store = store
        self._interval = interval_seconds
        self._should_sweep = should_sweep
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> int:
        """Sweep once and return the number of evicted records."""
        if self._should_sweep is not None and not self._should_sweep():
            return 0
        evicted = self._store.sweep_expired()
        if evicted:
            logger.debug(
                "rate_limit.janitor_sweep",
                extra={"evicted": evicted, "remaining_entries": len(self._store)},
            )
        return evicted

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            name="rate-limit-janitor",
            daemon=True,
        )
        self._thread.start()
        logger.debug("rate_limit.janitor_started", extra={"interval_s": self._interval})

    def stop(self, timeout: float | None = 5.0) -> None:
        thread = self._thread
        if thread is None:
            return
        self._stop_event.set()
        thread.join(timeout)
        self._thread = None
        logger.debug("rate_limit.janitor_stopped")

    def _run(self) -> None:
        while not self._stop_event.wait(self._interval):
            try:
                self.run_once()
            except Exception:  # noqa: BLE001
                # Keep sweeping; a failed pass only delays eviction.
                logger.exception("rate_limit.janitor_failed")
