"""
Service decorators for the Autoparts Commerce Platform.
"""

from __future__ import annotations

import functools
import logging
import time
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)


def monitor_performance(
    max_duration_seconds: float = 5.0, alert_threshold: float = 2.0
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Monitor method performance and alert on slow operations
    """

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            start_time = time.monotonic()

            try:
                result = func(*args, **kwargs)
            except Exception as e:
                duration = time.monotonic() - start_time
                logger.error(f"🔥 [Performance] Failed operation {func.__qualname__} after {duration:.2f}s: {e}")
                raise

            duration = time.monotonic() - start_time

            # Error on extremely slow operations
            if duration > max_duration_seconds:
                logger.error(f"🐢 [Performance] Extremely slow operation {func.__qualname__}: {duration:.2f}s")
            # Alert on slow operations
            elif duration > alert_threshold:
                logger.warning(f"⚠️ [Performance] Slow operation {func.__qualname__}: {duration:.2f}s")

            return result

        return wrapper

    return decorator
