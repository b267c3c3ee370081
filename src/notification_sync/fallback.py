"""Fallback Generator.

Synthesizes a plausible notification feed when the notification service
is unreachable or switched off, so the store keeps growing the same way
it would on live data.
"""

from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Callable, Optional
import asyncio
import logging
import random
import uuid

from src.notification_sync.config import (
    AttachmentType,
    FALLBACK_PRIORITY_WEIGHTS,
    DEFAULT_FALLBACK_INTERVAL,
    Priority,
    SourceKind,
)
from src.notification_sync.models import Attachment, Notification
from src.notification_sync.sources import EventSource

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Starter feed shown when no snapshot can be fetched
_SEED_TEMPLATES = [
    {
        "title": "Test App",
        "message": "This is a test notification created directly via Redis",
        "age_minutes": 27,
        "priority": Priority.HIGH,
        "labels": ("System", "Important"),
        "attachment": ("document", "Direct Redis Test", {"content": "Test document content"}),
    },
    {
        "title": "Test App",
        "message": "This is a test notification created via debug script",
        "age_minutes": 38,
        "priority": Priority.LOW,
        "labels": ("Debug", "Low Priority"),
        "attachment": None,
    },
]


class FallbackGenerator(EventSource):
    """Time-paced synthetic notification source.

    Every call to ``events()`` starts a fresh, infinite stream; cancelling
    the consuming task stops it with nothing buffered, so an event is
    either delivered once or never produced.
    """

    kind = SourceKind.FALLBACK

    def __init__(
        self,
        interval: float = DEFAULT_FALLBACK_INTERVAL,
        labels: tuple[str, ...] = ("Mock", "Automated"),
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if interval <= 0:
            raise ValueError(f"Fallback interval must be positive, got {interval}")
        self._interval = interval
        self._labels = labels
        self._rng = rng or random.Random()
        self._clock = clock
        self._generated = 0

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def generated_count(self) -> int:
        return self._generated

    def _pick_priority(self) -> Priority:
        priorities = list(FALLBACK_PRIORITY_WEIGHTS)
        weights = [FALLBACK_PRIORITY_WEIGHTS[p] for p in priorities]
        return self._rng.choices(priorities, weights=weights, k=1)[0]

    def make(self) -> Notification:
        """Build one synthetic notification with a fresh ID and the current time."""
        now = self._clock()
        self._generated += 1
        return Notification(
            id=f"mock-{uuid.uuid4().hex}",
            title="New Notification",
            message=f"This is a mock notification created at {now.strftime('%H:%M:%S')}",
            timestamp=now,
            read=False,
            priority=self._pick_priority(),
            labels=self._labels,
        )

    def seed_batch(self) -> list[Notification]:
        """A small starter feed with fresh IDs, newest first."""
        now = self._clock()
        batch = []
        for template in _SEED_TEMPLATES:
            attachment = None
            if template["attachment"]:
                kind, title, data = template["attachment"]
                attachment = Attachment(
                    id=f"doc-{uuid.uuid4().hex[:8]}",
                    type=AttachmentType(kind),
                    title=title,
                    data=dict(data),
                )
            batch.append(Notification(
                id=f"mock-{uuid.uuid4().hex}",
                title=template["title"],
                message=template["message"],
                timestamp=now - timedelta(minutes=template["age_minutes"]),
                priority=template["priority"],
                labels=template["labels"],
                attachment=attachment,
            ))
        return batch

    async def events(self) -> AsyncIterator[Notification]:
        logger.info("Fallback feed started (every %.1fs)", self._interval)
        try:
            while True:
                await asyncio.sleep(self._interval)
                yield self.make()
        finally:
            logger.info("Fallback feed stopped (%d generated in total)", self._generated)
