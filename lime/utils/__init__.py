"""Utility modules for LIME."""

from lime.utils.async_utils import log_task_exception, run_in_thread, task_callback
from lime.utils.backoff import ConsecutiveErrorTracker
from lime.utils.sqlite_retry import is_lock_error, sqlite_retry

__all__ = [
    "ConsecutiveErrorTracker",
    "is_lock_error",
    "log_task_exception",
    "run_in_thread",
    "sqlite_retry",
    "task_callback",
]
