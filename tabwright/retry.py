from __future__ import annotations

import time
from collections.abc import Callable
from functools import wraps
from typing import Any, TypeVar

from .errors import TabwrightError
from .http_client import HttpClientError

T = TypeVar("T")

RETRYABLE = (HttpClientError, TabwrightError)


def with_retry(max_attempts: int = 3, delay: float = 0.3, backoff: float = 1.5) -> Callable:
    """Decorator for automatic retry with exponential backoff."""

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            last_error: Exception | None = None
            current_delay = delay
            for attempt in range(max_attempts):
                try:
                    return func(*args, **kwargs)
                except RETRYABLE as e:
                    last_error = e
                    if attempt < max_attempts - 1:
                        time.sleep(current_delay)
                        current_delay *= backoff
            if last_error:
                raise last_error
            raise RuntimeError("Retry exhausted without error")

        return wrapper

    return decorator


def eventually(
    fn: Callable[[], T],
    timeout: float = 5.0,
    interval: float = 0.1,
    *,
    until: Callable[[T], bool] | None = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call `fn` until it stops raising (and `until(result)` holds) or `timeout` elapses.

    >>> eventually(tab.close)
    >>> eventually(lambda: tab.has_element("#done"), until=bool)

    The last error is re-raised on timeout; a result that never satisfied
    `until` raises TimeoutError.
    """
    deadline = clock() + timeout
    while True:
        try:
            result = fn()
        except RETRYABLE:
            if clock() >= deadline:
                raise
        else:
            if until is None or until(result):
                return result
            if clock() >= deadline:
                raise TimeoutError(f"condition not met within {timeout:.1f}s (last result: {result!r})")
        sleep(interval)


__all__ = ["RETRYABLE", "eventually", "with_retry"]
