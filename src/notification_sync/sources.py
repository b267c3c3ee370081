"""Event sources feeding the reconciliation engine.

The push channel (through its supervisor) and the fallback generator are
interchangeable producers; the engine pumps whichever one is active.
"""

from abc import ABC, abstractmethod
from typing import AsyncIterator

from src.notification_sync.config import SourceKind
from src.notification_sync.models import Notification


class EventSource(ABC):
    """A producer of incremental notification events."""

    kind: SourceKind

    @abstractmethod
    def events(self) -> AsyncIterator[Notification]:
        """Yield decoded notifications until the source ends or is cancelled."""

    async def stop(self) -> None:
        """Release anything held open by a running ``events()`` iteration."""
