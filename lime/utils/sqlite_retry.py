"""Retry SQLite calls that fail because another connection holds the lock.

The persistent media store can be shared between a running CLI and another
process; writes then hit "database is locked" until the other side commits.
"""

from __future__ import annotations

import functools
import logging
import sqlite3
import time
from collections.abc import Callable
from typing import ParamSpec, TypeVar

from lime.config import get_config

from .backoff import ConsecutiveErrorTracker

logger = logging.getLogger(__name__)

P = ParamSpec("P")
R = TypeVar("R")


def is_lock_error(e: Exception) -> bool:
    message = str(e).lower()
    return "database is locked" in message or "busy" in message


def sqlite_retry(
    max_attempts: int | None = None,
    base_delay: float | None = None,
    max_delay: float | None = None,
) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """Decorator retrying ``sqlite3.OperationalError`` lock errors with backoff.

    Settings left as None are read from ``RetryConfig`` on every call, so a
    changed configuration applies to already-decorated functions. Any other
    operational error is raised immediately.

    Example:
        @sqlite_retry()
        def _write_batch(conn, rows):
            with conn:
                conn.executemany(SQL, rows)
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        @functools.wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            retry = get_config().retry
            attempts = max_attempts if max_attempts is not None else retry.sqlite_max_attempts
            tracker = ConsecutiveErrorTracker(
                base_delay=base_delay if base_delay is not None else retry.sqlite_base_delay,
                max_delay=max_delay if max_delay is not None else retry.sqlite_max_delay,
                name=func.__name__,
            )

            while True:
                try:
                    return func(*args, **kwargs)
                except sqlite3.OperationalError as e:
                    if not is_lock_error(e) or tracker.consecutive_errors + 1 >= attempts:
                        raise
                    delay = tracker.on_error()
                    logger.debug(
                        "SQLite locked in %s (attempt %d/%d), retrying in %.2fs",
                        func.__name__,
                        tracker.consecutive_errors,
                        attempts,
                        delay,
                    )
                    time.sleep(delay)

        return wrapper

    return decorator
