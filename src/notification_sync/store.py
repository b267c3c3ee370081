"""Notification Store.

The application-facing state container: the reconciled, ordered feed,
its unread count, and the mark-read / delete entry points. One store is
one explicitly owned session with an open/close lifecycle.
"""

from typing import Any, Callable, Optional
import logging
import random

from src.logging_config.context import SyncContext, generate_session_id
from src.notification_sync.client import NotificationClient
from src.notification_sync.config import ConnectionState, DEFAULT_SYNC_CONFIG, SyncConfig
from src.notification_sync.engine import ReconciliationEngine
from src.notification_sync.fallback import FallbackGenerator
from src.notification_sync.models import Notification, PendingMutation
from src.notification_sync.supervisor import ConnectionSupervisor

logger = logging.getLogger(__name__)

Subscriber = Callable[[tuple[Notification, ...]], Any]


class NotificationStore:
    """Observable notification feed for one user.

    Example:
        async with NotificationStore(SyncConfig(user_id="user123")) as store:
            store.subscribe(lambda feed: print(len(feed), "notifications"))
            store.mark_read(store.notifications[0].id)
            print(store.unread_count)
    """

    def __init__(
        self,
        config: Optional[SyncConfig] = None,
        client: Optional[NotificationClient] = None,
        fallback: Optional[FallbackGenerator] = None,
        supervisor: Optional[ConnectionSupervisor] = None,
    ):
        self._config = config or DEFAULT_SYNC_CONFIG
        rng = random.Random(self._config.fallback_seed)
        self._fallback = fallback or FallbackGenerator(
            interval=self._config.fallback_interval,
            labels=self._config.fallback_labels,
            rng=rng,
        )

        if self._config.offline_mode:
            self._client = None
            self._supervisor = None
        else:
            self._client = client or NotificationClient(self._config)
            self._supervisor = supervisor or ConnectionSupervisor(self._client, self._config, rng=rng)

        self._engine = ReconciliationEngine(
            self._config,
            self._fallback,
            client=self._client,
            supervisor=self._supervisor,
        )
        self._engine.add_listener(self._on_change)
        self._notifications: tuple[Notification, ...] = ()
        self._subscribers: list[Subscriber] = []
        self._session_id = generate_session_id()
        self._is_open = False

    # ── Views ─────────────────────────────────────────────────────────

    @property
    def config(self) -> SyncConfig:
        return self._config

    @property
    def engine(self) -> ReconciliationEngine:
        return self._engine

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def is_open(self) -> bool:
        return self._is_open

    @property
    def notifications(self) -> tuple[Notification, ...]:
        """Current feed, newest first."""
        return self._notifications

    @property
    def unread_count(self) -> int:
        return sum(1 for n in self._notifications if not n.read)

    @property
    def pending(self) -> dict[str, PendingMutation]:
        return self._engine.pending

    @property
    def connection_state(self) -> Optional[ConnectionState]:
        return self._engine.connection_state

    @property
    def is_degraded(self) -> bool:
        return self._engine.is_degraded

    def get(self, notification_id: str) -> Optional[Notification]:
        for n in self._notifications:
            if n.id == notification_id:
                return n
        return None

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Call ``callback`` with the whole feed after every change.

        Returns a function that removes the subscription.
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _on_change(self, notifications: tuple[Notification, ...]) -> None:
        self._notifications = notifications
        for cb in list(self._subscribers):
            try:
                cb(notifications)
            except Exception:
                logger.exception("Store subscriber %r failed", cb)

    # ── Mutations ─────────────────────────────────────────────────────

    def mark_read(self, notification_id: str) -> bool:
        """Mark read now; the server is told in the background."""
        return self._engine.mark_read(notification_id)

    def delete(self, notification_id: str) -> bool:
        """Remove now; the server is told in the background."""
        return self._engine.delete(notification_id)

    def mark_all_read(self) -> int:
        """Mark every unread notification read. Returns how many changed."""
        unread = [n.id for n in self._notifications if not n.read]
        return sum(1 for notification_id in unread if self._engine.mark_read(notification_id))

    # ── Lifecycle ─────────────────────────────────────────────────────

    async def open(self, wait_for_snapshot: bool = True) -> None:
        """Start syncing. Optionally wait until the first snapshot is merged."""
        if self._is_open:
            return
        with SyncContext(user_id=self._config.user_id, session_id=self._session_id):
            if self._client is not None:
                await self._client.connect()
            await self._engine.start()
            self._is_open = True
            logger.info(
                "Notification store open (%s)",
                "offline" if self._config.offline_mode else self._config.base_url,
            )
        if wait_for_snapshot:
            await self._engine.wait_seeded(timeout=self._config.request_timeout * 2)

    async def close(self) -> None:
        """Stop syncing and release the transport."""
        if not self._is_open:
            return
        self._is_open = False
        await self._engine.stop()
        if self._client is not None:
            await self._client.aclose()
        logger.info("Notification store closed")

    async def __aenter__(self) -> "NotificationStore":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def refresh(self) -> bool:
        """Re-fetch the snapshot and merge it. On failure the feed is left as is."""
        return await self._engine.refresh()

    def reconnect(self) -> bool:
        """Reopen the push channel after it failed. False if nothing to do."""
        return self._engine.reconnect()
