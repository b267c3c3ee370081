"""Retry with exponential backoff.

Provides a delay calculator shared by reconnect loops and an async
decorator for retrying failed coroutine calls with jitter.
"""

import asyncio
import functools
import logging
import random
from typing import Any, Callable, Optional, Tuple, Type

from .config import RetryConfig, RetryStrategy

logger = logging.getLogger(__name__)


class MaxRetriesExceeded(Exception):
    """Raised when all retry attempts have been exhausted."""

    def __init__(self, attempts: int, last_exception: Exception):
        self.attempts = attempts
        self.last_exception = last_exception
        super().__init__(
            f"Max retries ({attempts}) exceeded. "
            f"Last error: {last_exception}"
        )


def compute_delay(
    attempt: int,
    config: RetryConfig,
    rng: Optional[random.Random] = None,
) -> float:
    """Compute the delay for the given attempt number.

    The result, jitter included, never exceeds max_delay.

    Args:
        attempt: Zero-based attempt index (0 = first retry).
        config: Retry configuration.
        rng: Random source for jitter; module-level random if omitted.

    Returns:
        Delay in seconds, capped at max_delay.
    """
    if config.strategy == RetryStrategy.EXPONENTIAL:
        # 2 ** attempt overflows float math long after max_delay is reached
        delay = config.base_delay * (2 ** min(attempt, 64))
    elif config.strategy == RetryStrategy.LINEAR:
        delay = config.base_delay * (attempt + 1)
    else:  # CONSTANT
        delay = config.base_delay

    jitter = (rng or random).uniform(0, config.jitter_max) if config.jitter_max > 0 else 0.0
    return min(delay + jitter, config.max_delay)


def retry(
    max_retries: Optional[int] = None,
    base_delay: Optional[float] = None,
    max_delay: Optional[float] = None,
    jitter_max: Optional[float] = None,
    retryable_exceptions: Optional[Tuple[Type[Exception], ...]] = None,
    strategy: Optional[RetryStrategy] = None,
    config: Optional[RetryConfig] = None,
    giveup: Optional[Callable[[], bool]] = None,
) -> Callable:
    """Decorator that retries a coroutine function on failure with backoff.

    Args:
        max_retries: Maximum number of retry attempts.
        base_delay: Base delay in seconds.
        max_delay: Maximum delay cap in seconds.
        jitter_max: Maximum random jitter to add.
        retryable_exceptions: Tuple of exception types to retry on.
        strategy: Backoff strategy.
        config: Full RetryConfig; individual params override its fields.
        giveup: Checked before every retry; returning True re-raises the
            last error immediately instead of sleeping.

    Usage:
        @retry(max_retries=3, retryable_exceptions=(TransportError,))
        async def confirm(notification_id):
            ...
    """
    cfg = (config or RetryConfig()).with_overrides(
        max_retries=max_retries,
        base_delay=base_delay,
        max_delay=max_delay,
        jitter_max=jitter_max,
        retryable_exceptions=retryable_exceptions,
        strategy=strategy,
    )

    def decorator(func: Callable) -> Callable:
        if not asyncio.iscoroutinefunction(func):
            raise TypeError(f"retry() requires a coroutine function, got {func!r}")

        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            last_exc: Optional[Exception] = None
            for attempt in range(cfg.max_retries + 1):
                try:
                    return await func(*args, **kwargs)
                except cfg.retryable_exceptions as exc:
                    last_exc = exc
                    if giveup is not None and giveup():
                        logger.debug("Giving up on %s: %s", func.__name__, exc)
                        raise
                    if attempt < cfg.max_retries:
                        delay = compute_delay(attempt, cfg)
                        logger.warning(
                            "Retry %d/%d for %s after %.2fs: %s",
                            attempt + 1,
                            cfg.max_retries,
                            func.__name__,
                            delay,
                            exc,
                        )
                        await asyncio.sleep(delay)
                    else:
                        logger.error(
                            "All %d retries exhausted for %s: %s",
                            cfg.max_retries,
                            func.__name__,
                            exc,
                        )
            raise MaxRetriesExceeded(cfg.max_retries, last_exc)  # type: ignore[arg-type]

        async_wrapper._retry_config = cfg  # type: ignore[attr-defined]
        return async_wrapper

    return decorator
