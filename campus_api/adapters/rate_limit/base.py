"""Window store interfaces.

The engine should depend on this abstraction (not the concrete implementation)
so the shared and local backends can be swapped at runtime.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class WindowCount:
    """Counter state observed by a single increment.

    Attributes:
        count: Requests counted in the current window, including this one.
        reset_in_ms: Milliseconds until the window lapses and the count resets.
    """

    count: int
    reset_in_ms: int


class WindowStore(ABC):
    """Interface for fixed-window counter stores."""

    #: Short backend label used in logs, decisions and health output.
    name: str = "abstract"

    @abstractmethod
    def increment_and_get(self, key: str, window_ms: int) -> WindowCount:
        """Atomically count one request for ``key`` in its current window.

        A missing or expired record is replaced by a fresh window holding a
        count of 1 and expiring ``window_ms`` from now.

        Args:
            key: Identity key being limited.
            window_ms: Window length in milliseconds.

        Returns:
            WindowCount after the increment.

        Raises:
            BackendUnavailableError: If the backend cannot serve the call.
        """
        raise NotImplementedError

    def close(self) -> None:
        """Release backend resources. No-op by default."""
