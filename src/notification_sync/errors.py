"""Error taxonomy for notification sync.

All errors derive from SyncError so callers at the edge can catch the
whole family. None of them is fatal to the process: the worst outcome of
any failure here is degraded-mode operation on synthetic data.
"""

from typing import Optional


class SyncError(Exception):
    """Base class for notification sync errors."""


class TransportError(SyncError):
    """Network, HTTP status or response-protocol failure."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class ConnectError(SyncError):
    """The push channel could not be established."""

    def __init__(self, url: str, reason: str, status_code: Optional[int] = None):
        self.url = url
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"Push channel {url} unavailable: {reason}")


class DecodeError(SyncError):
    """A single inbound payload was malformed."""

    def __init__(self, reason: str, payload: str = ""):
        self.reason = reason
        self.payload = payload
        super().__init__(f"Undecodable notification ({reason}): {payload[:100]}")


class ConfirmTimeoutError(SyncError, TimeoutError):
    """A mark-read or delete confirmation exceeded its time bound."""

    def __init__(self, notification_id: str, timeout: float):
        self.notification_id = notification_id
        self.timeout = timeout
        super().__init__(
            f"Confirmation for {notification_id} timed out after {timeout:.1f}s"
        )
