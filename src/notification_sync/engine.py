"""Reconciliation Engine.

Merges snapshot results, push or fallback events, and local mutations
into a single ordered, deduplicated notification list.

Snapshot results and source events enter through one intake queue that a
single merge task drains. Each merge step is synchronous, so a step never
interleaves with another; local mutations run the same kind of
synchronous step directly from the caller, which makes their optimistic
effect visible as soon as the call returns.

Display order is timestamp descending; equal timestamps keep arrival
order (earlier arrival first).
"""

from bisect import bisect_right
from dataclasses import dataclass, field
from typing import Any, Callable, Optional
import asyncio
import logging

from src.notification_sync.client import NotificationClient
from src.notification_sync.config import (
    ConnectionState,
    MutationKind,
    SourceKind,
    SyncConfig,
)
from src.notification_sync.errors import ConfirmTimeoutError, TransportError
from src.notification_sync.fallback import FallbackGenerator
from src.notification_sync.models import FeedPosition, Notification, PendingMutation
from src.notification_sync.sources import EventSource
from src.notification_sync.supervisor import ConnectionSupervisor
from src.resilience import MaxRetriesExceeded, RetryConfig, RetryStrategy, retry

logger = logging.getLogger(__name__)

ChangeListener = Callable[[tuple[Notification, ...]], Any]


def _sort_key(notification: Notification) -> float:
    return -notification.timestamp.timestamp()


@dataclass
class Intake:
    """One unit of work for the merge task."""
    kind: SourceKind
    notification: Optional[Notification] = None
    snapshot: Optional[list[Notification]] = None
    # Admission counter when the snapshot request was issued
    marker: int = 0


@dataclass
class EngineStats:
    """Merge and confirmation counters."""
    snapshots: int = 0
    admitted: int = 0
    duplicates: int = 0
    discarded_deleted: int = 0
    confirmed: int = 0
    confirm_failures: int = 0
    superseded: int = 0
    by_source: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "snapshots": self.snapshots,
            "admitted": self.admitted,
            "duplicates": self.duplicates,
            "discarded_deleted": self.discarded_deleted,
            "confirmed": self.confirmed,
            "confirm_failures": self.confirm_failures,
            "superseded": self.superseded,
            "by_source": dict(self.by_source),
        }


class ReconciliationEngine:
    """Single-owner merge of every notification producer.

    ``client`` and ``supervisor`` are None in offline mode, where the
    fallback generator is the only source from startup.
    """

    def __init__(
        self,
        config: SyncConfig,
        fallback: FallbackGenerator,
        client: Optional[NotificationClient] = None,
        supervisor: Optional[ConnectionSupervisor] = None,
    ):
        if (client is None) != (supervisor is None):
            raise ValueError("client and supervisor must be given together")

        self._config = config
        self._client = client
        self._supervisor = supervisor
        self._fallback = fallback
        self._confirm_retry = RetryConfig(
            max_retries=config.confirm_max_retries,
            base_delay=config.confirm_base_delay,
            max_delay=max(config.confirm_base_delay, config.confirm_max_delay),
            jitter_max=config.confirm_jitter,
            strategy=RetryStrategy.EXPONENTIAL,
            retryable_exceptions=(TransportError, ConfirmTimeoutError),
        )

        # Merge state
        self._queue: asyncio.Queue[Intake] = asyncio.Queue()
        self._items: list[Notification] = []
        self._keys: list[float] = []
        self._by_id: dict[str, Notification] = {}
        self._arrival: dict[str, int] = {}
        self._seq = 0
        self._position = FeedPosition()
        self._pending: dict[str, PendingMutation] = {}
        self._tombstones: set[str] = set()
        self._locally_read: set[str] = set()
        self._seeded = asyncio.Event()
        self._stats = EngineStats()
        self._listeners: list[ChangeListener] = []

        # Tasks
        self._started = False
        self._merge_task: Optional[asyncio.Task] = None
        self._push_task: Optional[asyncio.Task] = None
        self._fallback_task: Optional[asyncio.Task] = None
        self._snapshot_task: Optional[asyncio.Task] = None
        self._confirm_tasks: set[asyncio.Task] = set()
        self._fallback_active = False
        self._snapshot_failed = False

        if supervisor is not None:
            supervisor.on_live(self._on_live)
            supervisor.on_degraded(self._on_degraded)

    # ── Views ─────────────────────────────────────────────────────────

    @property
    def notifications(self) -> tuple[Notification, ...]:
        return tuple(self._items)

    @property
    def position(self) -> FeedPosition:
        return self._position

    @property
    def pending(self) -> dict[str, PendingMutation]:
        return dict(self._pending)

    @property
    def stats(self) -> EngineStats:
        return self._stats

    @property
    def is_offline(self) -> bool:
        return self._client is None

    @property
    def is_degraded(self) -> bool:
        """True while synthetic events are feeding the intake."""
        return self._fallback_active

    @property
    def snapshot_failed(self) -> bool:
        return self._snapshot_failed

    @property
    def connection_state(self) -> Optional[ConnectionState]:
        return self._supervisor.state if self._supervisor else None

    def get(self, notification_id: str) -> Optional[Notification]:
        return self._by_id.get(notification_id)

    def add_listener(self, callback: ChangeListener) -> None:
        """Register handler called with the full ordered list after each change."""
        self._listeners.append(callback)

    def remove_listener(self, callback: ChangeListener) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _publish(self) -> None:
        items = tuple(self._items)
        for cb in list(self._listeners):
            try:
                cb(items)
            except Exception:
                logger.exception("Change listener %r failed", cb)

    # ── Lifecycle ─────────────────────────────────────────────────────

    async def start(self) -> None:
        """Start the merge task and every producer."""
        if self._started:
            return
        self._started = True
        self._merge_task = asyncio.create_task(self._merge_loop(), name="notify-merge")

        if self.is_offline:
            logger.info("Offline mode: running on the fallback feed")
            await self._queue.put(Intake(SourceKind.SNAPSHOT, snapshot=self._fallback.seed_batch()))
            self._start_fallback()
            return

        self._snapshot_task = asyncio.create_task(self._load_snapshot(), name="notify-snapshot")
        self._start_push()

    async def stop(self) -> None:
        """Cancel every task. Pending confirmations are abandoned."""
        if not self._started:
            return
        self._started = False
        self._fallback_active = False
        if self._supervisor is not None:
            await self._supervisor.stop()

        tasks = [
            t for t in (
                self._push_task,
                self._fallback_task,
                self._snapshot_task,
                self._merge_task,
                *self._confirm_tasks,
            )
            if t is not None and not t.done()
        ]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        self._push_task = self._fallback_task = self._snapshot_task = self._merge_task = None
        self._confirm_tasks.clear()
        logger.info("Reconciliation engine stopped (%s)", self._stats.to_dict())

    async def wait_seeded(self, timeout: Optional[float] = None) -> bool:
        """Wait for the first snapshot (or its fallback seed) to be merged."""
        try:
            await asyncio.wait_for(self._seeded.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def drain(self) -> None:
        """Wait until everything already queued has been merged."""
        await self._queue.join()

    async def refresh(self) -> bool:
        """Fetch a fresh snapshot and merge it. False if nothing was fetched."""
        if self.is_offline:
            return False
        fetched = await self._load_snapshot()
        await self.drain()
        return fetched

    def reconnect(self) -> bool:
        """Restart the push channel after a terminal failure."""
        if self._supervisor is None or not self._started:
            return False
        if self._push_task is not None and not self._push_task.done():
            return False
        self._supervisor.reset()
        self._start_push()
        return True

    # ── Producers ─────────────────────────────────────────────────────

    def _start_push(self) -> None:
        self._push_task = asyncio.create_task(
            self._pump(self._supervisor), name="notify-push"  # type: ignore[arg-type]
        )

    def _start_fallback(self) -> None:
        if self._fallback_task is not None and not self._fallback_task.done():
            return
        self._fallback_active = True
        self._fallback_task = asyncio.create_task(
            self._pump(self._fallback), name="notify-fallback"
        )

    def _stop_fallback(self) -> None:
        self._fallback_active = False
        if self._fallback_task is not None and not self._fallback_task.done():
            self._fallback_task.cancel()
            logger.info("Fallback feed deactivated")
        self._fallback_task = None

    def _on_live(self) -> None:
        if self._fallback_active:
            logger.info("Push channel live; leaving degraded mode")
        self._stop_fallback()

    def _on_degraded(self) -> None:
        if not self._started:
            return
        logger.warning("Push channel failed; activating fallback feed")
        self._start_fallback()

    async def _pump(self, source: EventSource) -> None:
        try:
            async for notification in source.events():
                self.submit(notification, source.kind)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("%s source crashed", source.kind.value)

    async def _load_snapshot(self) -> bool:
        """Fetch a snapshot and queue it. Returns False if the fetch failed.

        Only a feed that was never seeded falls back to the starter batch;
        a failed refresh keeps the current working set.
        """
        marker = self._seq
        try:
            notifications = await asyncio.wait_for(
                self._client.fetch_snapshot(),  # type: ignore[union-attr]
                timeout=self._config.request_timeout,
            )
        except (TransportError, asyncio.TimeoutError) as e:
            reason = e or type(e).__name__
            if self._seeded.is_set():
                logger.warning("Snapshot refresh failed (%s); keeping current feed", reason)
                return False
            self._snapshot_failed = True
            logger.warning("Snapshot unavailable (%s); seeding from fallback feed", reason)
            notifications = self._fallback.seed_batch()
            await self._queue.put(Intake(SourceKind.SNAPSHOT, snapshot=notifications, marker=marker))
            return False
        await self._queue.put(Intake(SourceKind.SNAPSHOT, snapshot=notifications, marker=marker))
        return True

    def submit(self, notification: Notification, kind: SourceKind = SourceKind.PUSH) -> None:
        """Queue one incremental event for admission."""
        if kind == SourceKind.FALLBACK and not self._fallback_active:
            return
        self._queue.put_nowait(Intake(kind, notification=notification))

    # ── Merge ─────────────────────────────────────────────────────────

    async def _merge_loop(self) -> None:
        while True:
            item = await self._queue.get()
            try:
                self.apply(item)
            except Exception:
                logger.exception("Failed to merge %s intake", item.kind.value)
            finally:
                self._queue.task_done()

    def apply(self, item: Intake) -> None:
        """Merge one intake item. Never awaits."""
        if item.kind == SourceKind.SNAPSHOT:
            self._seed(item.snapshot or [], item.marker)
            self._seeded.set()
            self._publish()
        elif item.notification is not None and self._admit(item.notification, item.kind):
            self._publish()

    def _seed(self, snapshot: list[Notification], marker: int) -> None:
        previous = self._by_id
        snapshot_ids: set[str] = set()
        seeded: list[Notification] = []
        for n in snapshot:
            if n.id in snapshot_ids:
                continue
            snapshot_ids.add(n.id)
            if n.id in self._tombstones:
                continue
            prev = previous.get(n.id)
            if n.id in self._locally_read or (prev is not None and prev.read):
                n = n.as_read()
            seeded.append(n)

        # Events admitted while the request was in flight may be newer than the snapshot
        carried = [
            n for n in self._items
            if self._arrival.get(n.id, 0) > marker and n.id not in snapshot_ids
        ]

        seeded.sort(key=lambda n: n.timestamp, reverse=True)
        self._items = []
        self._keys = []
        self._by_id = {}
        arrival = {}
        for n in seeded:
            self._items.append(n)
            self._keys.append(_sort_key(n))
            self._by_id[n.id] = n
            self._seq += 1
            arrival[n.id] = self._seq
        for n in carried:
            self._insert(n)
            arrival[n.id] = self._arrival[n.id]
        self._arrival = arrival

        self._position.rebuild(self._items)
        self._stats.snapshots += 1
        logger.info(
            "Seeded feed with %d notifications (%d carried over)",
            len(seeded), len(carried),
        )

    def _admit(self, notification: Notification, kind: SourceKind) -> bool:
        pending = self._pending.get(notification.id)
        if notification.id in self._tombstones or (
            pending is not None and pending.kind == MutationKind.DELETE
        ):
            self._stats.discarded_deleted += 1
            logger.debug("Discarding %s event for deleted %s", kind.value, notification.id)
            return False

        if notification.id in self._position or notification.id in self._by_id:
            self._stats.duplicates += 1
            logger.debug("Dropping duplicate %s event %s", kind.value, notification.id)
            return False

        if notification.id in self._locally_read:
            notification = notification.as_read()
        self._seq += 1
        self._arrival[notification.id] = self._seq
        self._insert(notification)
        self._position.observe(notification)
        self._stats.admitted += 1
        self._stats.by_source[kind.value] = self._stats.by_source.get(kind.value, 0) + 1
        return True

    def _insert(self, notification: Notification) -> None:
        key = _sort_key(notification)
        index = bisect_right(self._keys, key)
        self._keys.insert(index, key)
        self._items.insert(index, notification)
        self._by_id[notification.id] = notification

    def _index_of(self, notification_id: str) -> int:
        for i, n in enumerate(self._items):
            if n.id == notification_id:
                return i
        raise KeyError(notification_id)

    # ── Local Mutations ───────────────────────────────────────────────

    def mark_read(self, notification_id: str) -> bool:
        """Optimistically mark read and schedule confirmation.

        Returns False (and does nothing) for unknown, deleted or already
        read notifications.
        """
        current = self._by_id.get(notification_id)
        if current is None or current.read:
            return False

        updated = current.as_read()
        self._items[self._index_of(notification_id)] = updated
        self._by_id[notification_id] = updated
        self._locally_read.add(notification_id)
        self._publish()

        self._record(PendingMutation(notification_id, MutationKind.READ))
        return True

    def delete(self, notification_id: str) -> bool:
        """Optimistically remove and schedule confirmation.

        A pending mark-read for the same ID is superseded: its in-flight
        call is left alone but it is no longer retried or tracked.
        """
        if notification_id not in self._by_id:
            return False

        index = self._index_of(notification_id)
        del self._items[index]
        del self._keys[index]
        del self._by_id[notification_id]
        self._arrival.pop(notification_id, None)
        self._tombstones.add(notification_id)
        self._publish()

        previous = self._pending.get(notification_id)
        if previous is not None and previous.kind == MutationKind.READ:
            self._stats.superseded += 1
            logger.debug("Delete supersedes pending read of %s", notification_id)
        self._record(PendingMutation(notification_id, MutationKind.DELETE))
        return True

    def _record(self, mutation: PendingMutation) -> None:
        # Offline: there is no authority to confirm with
        if self._client is None:
            return
        self._pending[mutation.notification_id] = mutation
        task = asyncio.create_task(
            self._confirm(mutation),
            name=f"notify-confirm-{mutation.kind.value}-{mutation.notification_id}",
        )
        self._confirm_tasks.add(task)
        task.add_done_callback(self._confirm_tasks.discard)

    def _is_current(self, mutation: PendingMutation) -> bool:
        return self._pending.get(mutation.notification_id) is mutation

    async def _confirm(self, mutation: PendingMutation) -> None:
        """Confirm with bounded retries; the optimistic change is never rolled back."""
        client = self._client
        call = client.confirm_read if mutation.kind == MutationKind.READ else client.confirm_delete  # type: ignore[union-attr]
        timeout = self._config.confirm_timeout

        async def attempt() -> None:
            mutation.attempts += 1
            try:
                await asyncio.wait_for(call(mutation.notification_id), timeout=timeout)
            except asyncio.TimeoutError as exc:
                raise ConfirmTimeoutError(mutation.notification_id, timeout) from exc

        attempt.__name__ = f"confirm_{mutation.kind.value}"
        confirm = retry(
            config=self._confirm_retry,
            giveup=lambda: not self._is_current(mutation),
        )(attempt)

        try:
            await confirm()
            self._stats.confirmed += 1
            logger.debug("Confirmed %s of %s", mutation.kind.value, mutation.notification_id)
        except (MaxRetriesExceeded, TransportError, ConfirmTimeoutError) as e:
            if self._is_current(mutation):
                self._stats.confirm_failures += 1
                logger.warning(
                    "Could not confirm %s of %s after %d attempts; keeping local change: %s",
                    mutation.kind.value,
                    mutation.notification_id,
                    mutation.attempts,
                    e,
                )
            else:
                logger.debug("Dropped superseded %s confirmation for %s",
                             mutation.kind.value, mutation.notification_id)
        finally:
            if self._is_current(mutation):
                del self._pending[mutation.notification_id]
