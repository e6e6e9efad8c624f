"""Exponential backoff bookkeeping for retried operations."""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class ConsecutiveErrorTracker:
    """Count consecutive failures and hand out growing delays.

    The n-th consecutive failure waits ``base_delay * backoff_factor**(n-1)``
    seconds, capped at ``max_delay``. A success resets the streak.

    Example:
        tracker = ConsecutiveErrorTracker(base_delay=0.1, max_delay=2.0)
        while True:
            try:
                write_batch()
                tracker.reset()
                break
            except sqlite3.OperationalError:
                time.sleep(tracker.on_error())
    """

    def __init__(
        self,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        backoff_factor: float = 2.0,
        name: str = "",
    ) -> None:
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.backoff_factor = backoff_factor
        self.name = name or "tracker"

        self._consecutive = 0
        self._total_errors = 0

    @property
    def consecutive_errors(self) -> int:
        return self._consecutive

    @property
    def total_errors(self) -> int:
        return self._total_errors

    def reset(self) -> None:
        """Clear the streak after a success."""
        if self._consecutive:
            logger.debug("%s: recovered after %d errors", self.name, self._consecutive)
        self._consecutive = 0

    def on_error(self) -> float:
        """Record a failure and return the seconds to wait before retrying."""
        self._consecutive += 1
        self._total_errors += 1
        return min(
            self.base_delay * self.backoff_factor ** (self._consecutive - 1),
            self.max_delay,
        )
