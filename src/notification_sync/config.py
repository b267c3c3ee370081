"""Configuration for the Notification Sync Engine."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class Priority(str, Enum):
    """Notification priority levels."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class AttachmentType(str, Enum):
    """Attachment type tags."""
    DOCUMENT = "document"
    TASK = "task"
    OTHER = "other"


class MutationKind(str, Enum):
    """Local mutations awaiting server acknowledgement."""
    READ = "read"
    DELETE = "delete"


class ConnectionState(str, Enum):
    """Push channel lifecycle states."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    FAILED = "failed"


class SourceKind(str, Enum):
    """Producers feeding the reconciliation intake."""
    SNAPSHOT = "snapshot"
    PUSH = "push"
    FALLBACK = "fallback"


# Wire priorities the notification service emits beyond the three we model
PRIORITY_ALIASES: dict[str, Priority] = {
    "high": Priority.HIGH,
    "critical": Priority.HIGH,
    "urgent": Priority.HIGH,
    "medium": Priority.MEDIUM,
    "normal": Priority.MEDIUM,
    "low": Priority.LOW,
}

# Synthetic feed: most events are low priority
FALLBACK_PRIORITY_WEIGHTS: dict[Priority, float] = {
    Priority.HIGH: 0.15,
    Priority.MEDIUM: 0.25,
    Priority.LOW: 0.60,
}


# ── Default Constants ────────────────────────────────────────────────

DEFAULT_BASE_URL = "http://localhost:8080"
DEFAULT_USER_ID = "user123"
DEFAULT_REQUEST_TIMEOUT = 10.0  # seconds
DEFAULT_CONFIRM_TIMEOUT = 5.0  # seconds, per attempt
DEFAULT_CONFIRM_MAX_RETRIES = 3
DEFAULT_CONFIRM_BASE_DELAY = 1.0  # seconds
DEFAULT_CONFIRM_MAX_DELAY = 30.0  # seconds
DEFAULT_CONFIRM_JITTER = 0.5  # seconds
DEFAULT_RECONNECT_BASE_DELAY = 1.0  # seconds
DEFAULT_RECONNECT_MAX_DELAY = 60.0  # seconds
DEFAULT_RECONNECT_MAX_RETRIES = 5
DEFAULT_RECONNECT_JITTER = 0.5  # seconds
DEFAULT_FALLBACK_INTERVAL = 15.0  # seconds


@dataclass
class SyncConfig:
    """Notification sync configuration."""

    base_url: str = DEFAULT_BASE_URL
    user_id: str = DEFAULT_USER_ID
    # Bypass the remote service and run on synthetic data from startup
    offline_mode: bool = False

    # Transport
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT

    # Mutation confirmation
    confirm_timeout: float = DEFAULT_CONFIRM_TIMEOUT
    confirm_max_retries: int = DEFAULT_CONFIRM_MAX_RETRIES
    confirm_base_delay: float = DEFAULT_CONFIRM_BASE_DELAY
    confirm_max_delay: float = DEFAULT_CONFIRM_MAX_DELAY
    confirm_jitter: float = DEFAULT_CONFIRM_JITTER

    # Push channel supervision
    reconnect_base_delay: float = DEFAULT_RECONNECT_BASE_DELAY
    reconnect_max_delay: float = DEFAULT_RECONNECT_MAX_DELAY
    reconnect_max_retries: int = DEFAULT_RECONNECT_MAX_RETRIES
    reconnect_jitter: float = DEFAULT_RECONNECT_JITTER

    # Fallback generator
    fallback_interval: float = DEFAULT_FALLBACK_INTERVAL
    fallback_labels: tuple[str, ...] = ("Mock", "Automated")
    fallback_seed: Optional[int] = None

    headers: dict[str, str] = field(default_factory=dict)

    @property
    def snapshot_path(self) -> str:
        return "/api/notifications"

    @property
    def subscribe_path(self) -> str:
        return "/api/notifications/subscribe"

    @property
    def search_path(self) -> str:
        return "/api/notifications/search"

    def read_path(self, notification_id: str) -> str:
        return f"/api/notifications/{notification_id}/read"

    def item_path(self, notification_id: str) -> str:
        return f"/api/notifications/{notification_id}"

    @classmethod
    def from_settings(cls, settings) -> "SyncConfig":
        """Build a config from the environment-backed platform settings."""
        return cls(
            base_url=settings.base_url,
            user_id=settings.user_id,
            offline_mode=settings.offline_mode,
            request_timeout=settings.request_timeout,
            confirm_timeout=settings.confirm_timeout,
            confirm_max_retries=settings.confirm_max_retries,
            confirm_base_delay=settings.confirm_base_delay,
            confirm_max_delay=settings.confirm_max_delay,
            confirm_jitter=settings.confirm_jitter,
            reconnect_base_delay=settings.reconnect_base_delay,
            reconnect_max_delay=settings.reconnect_max_delay,
            reconnect_max_retries=settings.reconnect_max_retries,
            reconnect_jitter=settings.reconnect_jitter,
            fallback_interval=settings.fallback_interval,
        )


DEFAULT_SYNC_CONFIG = SyncConfig()
