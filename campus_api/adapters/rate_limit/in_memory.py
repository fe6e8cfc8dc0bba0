"""In-memory fixed-window counter store (fallback backend).

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state, so increments for a key are
  serialised and the store never admits past the limit.
- Ephemeral: records are lost on restart.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable

from campus_api.adapters.rate_limit.base import WindowCount, WindowStore


@dataclass
class WindowRecord:
    count: int
    reset_at_ms: int


class LocalWindowStore(WindowStore):
    """Window store backed by a process-local dict.

    Each key owns one ``WindowRecord``. A record is replaced the first time it
    is touched at or after ``reset_at_ms``. Expired records that are never
    touched again are removed by ``sweep_expired`` (see the janitor).
    """

    name = "local"

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        """Initialize the store.

        Args:
            clock: Time source function returning UNIX time in seconds.
        """
        self._clock = clock
        self._lock = threading.RLock()
        self._records: dict[str, WindowRecord] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._records

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def increment_and_get(self, key: str, window_ms: int) -> WindowCount:
        """Count one request for ``key``; never fails operationally."""
        if not key:
            raise ValueError("key must be a non-empty string")
        if window_ms < 1:
            raise ValueError("window_ms must be >= 1")

        now_ms = self._now_ms()
        with self._lock:
            record = self._records.get(key)
            if record is None or now_ms >= record.reset_at_ms:
                record = WindowRecord(count=1, reset_at_ms=now_ms + window_ms)
                self._records[key] = record
            else:
                record.count += 1
            return WindowCount(count=record.count, reset_in_ms=record.reset_at_ms - now_ms)

    def get(self, key: str) -> WindowRecord | None:
        """Return a copy of the record for ``key`` (expired or not)."""
        with self._lock:
            record = self._records.get(key)
            if record is None:
                return None
            return WindowRecord(count=record.count, reset_at_ms=record.reset_at_ms)

    def sweep_expired(self) -> int:
        """Evict every record whose window has lapsed.

        Returns:
            Number of evicted records.
        """
        now_ms = self._now_ms()
        with self._lock:
            expired_keys = [k for k, r in self._records.items() if now_ms >= r.reset_at_ms]
            for key in expired_keys:
                del self._records[key]
        return len(expired_keys)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
