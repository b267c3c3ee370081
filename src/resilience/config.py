"""Configuration for retry and backoff."""

from dataclasses import dataclass
from enum import Enum
from typing import Tuple, Type


class RetryStrategy(str, Enum):
    """Retry backoff strategies."""
    EXPONENTIAL = "exponential"
    LINEAR = "linear"
    CONSTANT = "constant"


# ── Default Constants ────────────────────────────────────────────────

DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY = 1.0  # seconds
DEFAULT_MAX_DELAY = 60.0  # seconds
DEFAULT_JITTER_MAX = 0.5  # seconds


@dataclass
class RetryConfig:
    """Configuration for retry logic."""

    max_retries: int = DEFAULT_MAX_RETRIES
    base_delay: float = DEFAULT_BASE_DELAY
    max_delay: float = DEFAULT_MAX_DELAY
    jitter_max: float = DEFAULT_JITTER_MAX
    strategy: RetryStrategy = RetryStrategy.EXPONENTIAL
    retryable_exceptions: Tuple[Type[Exception], ...] = (
        ConnectionError,
        TimeoutError,
        OSError,
    )

    def with_overrides(self, **changes) -> "RetryConfig":
        """Copy with the non-None keyword arguments applied."""
        values = {
            "max_retries": self.max_retries,
            "base_delay": self.base_delay,
            "max_delay": self.max_delay,
            "jitter_max": self.jitter_max,
            "strategy": self.strategy,
            "retryable_exceptions": self.retryable_exceptions,
        }
        values.update({k: v for k, v in changes.items() if v is not None})
        return RetryConfig(**values)
