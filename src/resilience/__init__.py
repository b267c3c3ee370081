"""Retry and backoff helpers.

Shared by the push channel supervisor (reconnect delays) and the
mutation confirmation path (bounded retries).
"""

from .config import (
    RetryStrategy,
    RetryConfig,
)
from .retry import (
    MaxRetriesExceeded,
    compute_delay,
    retry,
)

__all__ = [
    # Config / Enums
    "RetryStrategy",
    "RetryConfig",
    # Retry
    "MaxRetriesExceeded",
    "compute_delay",
    "retry",
]
