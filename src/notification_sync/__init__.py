"""Notification Sync Engine.

Keeps a local notification feed consistent with the notification service:
- Snapshot fetch, mark-read and delete over REST
- Server-sent-event push channel with supervised reconnection
- Synthetic fallback feed while the service is unreachable
- Ordered, deduplicated reconciliation with optimistic local mutations
"""

from src.notification_sync.config import (
    AttachmentType,
    ConnectionState,
    MutationKind,
    Priority,
    SourceKind,
    SyncConfig,
    DEFAULT_SYNC_CONFIG,
)
from src.notification_sync.errors import (
    ConfirmTimeoutError,
    ConnectError,
    DecodeError,
    SyncError,
    TransportError,
)
from src.notification_sync.models import (
    Attachment,
    FeedPosition,
    Notification,
    PendingMutation,
)
from src.notification_sync.client import NotificationClient, PushChannel, decode_payload
from src.notification_sync.supervisor import ConnectionSupervisor
from src.notification_sync.fallback import FallbackGenerator
from src.notification_sync.sources import EventSource
from src.notification_sync.engine import ReconciliationEngine
from src.notification_sync.store import NotificationStore

__all__ = [
    # Config
    "AttachmentType",
    "ConnectionState",
    "MutationKind",
    "Priority",
    "SourceKind",
    "SyncConfig",
    "DEFAULT_SYNC_CONFIG",
    # Errors
    "ConfirmTimeoutError",
    "ConnectError",
    "DecodeError",
    "SyncError",
    "TransportError",
    # Models
    "Attachment",
    "FeedPosition",
    "Notification",
    "PendingMutation",
    # Components
    "NotificationClient",
    "PushChannel",
    "decode_payload",
    "ConnectionSupervisor",
    "FallbackGenerator",
    "EventSource",
    "ReconciliationEngine",
    "NotificationStore",
]
