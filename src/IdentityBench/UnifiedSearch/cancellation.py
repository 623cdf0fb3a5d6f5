"""Cooperative cancellation and time budgets for collaborator calls.

A unified search performs one search round trip followed by up to ``limit``
detail lookups. :class:`Deadline` bundles a monotonic time budget with a
:class:`CancellationToken` and is threaded through both collaborator calls so
that callers can abandon a request from another thread, and collaborators can
size their own timeouts from :meth:`Deadline.remaining`. Nothing here
interrupts threads; every check is explicit.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Optional

__all__ = ("CancellationToken", "Deadline")


class CancellationToken:
    """Thread-safe flag for cooperative cancellation.

    Examples:
        >>> token = CancellationToken()
        >>> token.is_cancelled()
        False
        >>> token.cancel()
        >>> token.is_cancelled()
        True
    """

    def __init__(self) -> None:
        self._is_cancelled = threading.Event()

    def cancel(self) -> None:
        """Signal that cancellation has been requested."""
        self._is_cancelled.set()

    def is_cancelled(self) -> bool:
        return self._is_cancelled.is_set()


class Deadline:
    """Monotonic time budget combined with a cancellation token.

    Attributes:
        token: Token shared with whoever may cancel the request.

    Examples:
        >>> deadline = Deadline(None)
        >>> deadline.expired()
        False
        >>> deadline.remaining() is None
        True
    """

    def __init__(
        self,
        budget_seconds: Optional[float],
        *,
        token: Optional[CancellationToken] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self._expires_at = None if budget_seconds is None else clock() + budget_seconds
        self.token = token or CancellationToken()

    @classmethod
    def unbounded(cls) -> "Deadline":
        return cls(None)

    def remaining(self) -> Optional[float]:
        """Seconds left in the budget, ``None`` when unbounded, never negative."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    def expired(self) -> bool:
        """True when the token was cancelled or the budget is spent."""
        if self.token.is_cancelled():
            return True
        remaining = self.remaining()
        return remaining is not None and remaining <= 0.0

    def bounded(self, seconds: Optional[float]) -> Optional[float]:
        """Clamp a per-call timeout to the time remaining in this budget."""
        remaining = self.remaining()
        if seconds is None:
            return remaining
        if remaining is None:
            return seconds
        return min(seconds, remaining)
