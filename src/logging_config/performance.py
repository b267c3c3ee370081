"""Performance Logging.

Decorator for timing calls and flagging slow ones.
"""

import asyncio
import functools
import logging
import time
from typing import Any, Callable, Optional

from src.logging_config.config import DEFAULT_LOGGING_CONFIG


def log_performance(
    threshold_ms: Optional[float] = None,
    logger_name: Optional[str] = None,
) -> Callable:
    """Decorator that logs function execution time.

    Logs every call at DEBUG, calls slower than the threshold at WARNING,
    and failures at ERROR (the exception still propagates).

    Args:
        threshold_ms: Slow operation threshold in milliseconds.
                     Defaults to config.slow_threshold_ms.
        logger_name: Custom logger name. Defaults to function's module.

    Example:
        @log_performance(threshold_ms=2000)
        async def fetch_snapshot(self):
            ...
    """
    if threshold_ms is None:
        threshold_ms = DEFAULT_LOGGING_CONFIG.slow_threshold_ms

    def decorator(func: Callable) -> Callable:
        _logger = logging.getLogger(logger_name or func.__module__)
        func_name = func.__qualname__

        def _report(start: float, failure: Optional[BaseException]) -> None:
            duration_ms = (time.perf_counter() - start) * 1000
            extra = {"duration_ms": round(duration_ms, 2)}
            if failure is not None:
                _logger.error(
                    "%s failed after %.1fms: %s",
                    func_name, duration_ms, type(failure).__name__, extra=extra,
                )
            elif duration_ms >= threshold_ms:
                _logger.warning(
                    "Slow operation: %s took %.1fms", func_name, duration_ms, extra=extra,
                )
            else:
                _logger.debug("%s completed in %.1fms", func_name, duration_ms, extra=extra)

        if asyncio.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                start = time.perf_counter()
                try:
                    result = await func(*args, **kwargs)
                except Exception as exc:
                    _report(start, exc)
                    raise
                _report(start, None)
                return result
            return async_wrapper

        @functools.wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as exc:
                _report(start, exc)
                raise
            _report(start, None)
            return result
        return sync_wrapper

    return decorator
