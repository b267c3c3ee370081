"""Push Channel Connection Supervisor.

Owns the push channel lifecycle and turns transport trouble into state
changes instead of exceptions.

States:
  DISCONNECTED -> CONNECTING -> CONNECTED -> RECONNECTING -> FAILED

  CONNECTING   -- ConnectError -->      RECONNECTING (one failure recorded)
  CONNECTED    -- stream closed/error -> RECONNECTING
  RECONNECTING -- backoff elapsed -->   CONNECTING
  RECONNECTING -- budget exceeded -->   FAILED (terminal until reset())

Entering CONNECTED signals "live"; entering FAILED signals "degraded".
"""

from contextlib import aclosing
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Callable, Optional
import asyncio
import logging
import random

from src.notification_sync.client import NotificationClient, PushChannel, decode_payload
from src.notification_sync.config import ConnectionState, SourceKind, SyncConfig
from src.notification_sync.errors import ConnectError, DecodeError, TransportError
from src.notification_sync.models import Notification
from src.notification_sync.sources import EventSource
from src.resilience import RetryConfig, RetryStrategy, compute_delay

logger = logging.getLogger(__name__)

StateListener = Callable[[ConnectionState, ConnectionState], Any]
SignalListener = Callable[[], Any]

_ALLOWED_TRANSITIONS: dict[ConnectionState, set[ConnectionState]] = {
    ConnectionState.DISCONNECTED: {ConnectionState.CONNECTING},
    ConnectionState.CONNECTING: {
        ConnectionState.CONNECTED,
        ConnectionState.RECONNECTING,
        ConnectionState.DISCONNECTED,
    },
    ConnectionState.CONNECTED: {
        ConnectionState.RECONNECTING,
        ConnectionState.DISCONNECTED,
    },
    ConnectionState.RECONNECTING: {
        ConnectionState.CONNECTING,
        ConnectionState.FAILED,
        ConnectionState.DISCONNECTED,
    },
    ConnectionState.FAILED: {ConnectionState.DISCONNECTED},
}


class InvalidTransition(Exception):
    """Raised on a state change the lifecycle does not permit."""

    def __init__(self, current: ConnectionState, target: ConnectionState):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move push channel from {current.value} to {target.value}")


@dataclass
class StateTransition:
    """One recorded lifecycle step."""
    from_state: ConnectionState
    to_state: ConnectionState
    reason: str = ""
    at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class SupervisorStats:
    """Counters for diagnostics."""
    connect_attempts: int = 0
    connect_failures: int = 0
    disconnects: int = 0
    decode_errors: int = 0
    events_delivered: int = 0
    last_error: str = ""

    def to_dict(self) -> dict:
        return {
            "connect_attempts": self.connect_attempts,
            "connect_failures": self.connect_failures,
            "disconnects": self.disconnects,
            "decode_errors": self.decode_errors,
            "events_delivered": self.events_delivered,
            "last_error": self.last_error,
        }


class ConnectionSupervisor(EventSource):
    """Keeps the push channel connected and reports its health.

    Example:
        supervisor = ConnectionSupervisor(client, config)
        supervisor.on_degraded(lambda: print("switching to fallback"))
        async for notification in supervisor.events():
            handle(notification)
    """

    kind = SourceKind.PUSH

    def __init__(
        self,
        client: NotificationClient,
        config: SyncConfig,
        rng: Optional[random.Random] = None,
    ):
        self._client = client
        self._config = config
        self._rng = rng
        self._backoff = RetryConfig(
            max_retries=config.reconnect_max_retries,
            base_delay=config.reconnect_base_delay,
            max_delay=config.reconnect_max_delay,
            jitter_max=config.reconnect_jitter,
            strategy=RetryStrategy.EXPONENTIAL,
        )
        self._state = ConnectionState.DISCONNECTED
        self._failures = 0
        self._running = False
        self._stopping = False
        self._channel: Optional[PushChannel] = None
        self._history: list[StateTransition] = []
        self._stats = SupervisorStats()
        self._state_listeners: list[StateListener] = []
        self._live_listeners: list[SignalListener] = []
        self._degraded_listeners: list[SignalListener] = []

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_live(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def is_failed(self) -> bool:
        return self._state == ConnectionState.FAILED

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def failure_count(self) -> int:
        return self._failures

    @property
    def stats(self) -> SupervisorStats:
        return self._stats

    @property
    def history(self) -> list[StateTransition]:
        return list(self._history)

    # ── Listener Registration ─────────────────────────────────────────

    def on_state_change(self, callback: StateListener) -> None:
        """Register handler called with (old_state, new_state)."""
        self._state_listeners.append(callback)

    def on_live(self, callback: SignalListener) -> None:
        """Register handler for entering CONNECTED."""
        self._live_listeners.append(callback)

    def on_degraded(self, callback: SignalListener) -> None:
        """Register handler for entering FAILED."""
        self._degraded_listeners.append(callback)

    def _notify(self, callbacks: list, *args: Any) -> None:
        for cb in callbacks:
            try:
                cb(*args)
            except Exception:
                logger.exception("Supervisor listener %r failed", cb)

    def _transition_to(self, new_state: ConnectionState, reason: str = "") -> None:
        old_state = self._state
        if new_state not in _ALLOWED_TRANSITIONS[old_state]:
            raise InvalidTransition(old_state, new_state)

        self._state = new_state
        self._history.append(StateTransition(old_state, new_state, reason))
        logger.info(
            "Push channel: %s -> %s%s",
            old_state.value,
            new_state.value,
            f" ({reason})" if reason else "",
        )

        self._notify(self._state_listeners, old_state, new_state)
        if new_state == ConnectionState.CONNECTED:
            self._notify(self._live_listeners)
        elif new_state == ConnectionState.FAILED:
            self._notify(self._degraded_listeners)

    # ── Lifecycle ─────────────────────────────────────────────────────

    def reset(self) -> None:
        """Leave FAILED so the channel can be opened again."""
        if self._running:
            raise RuntimeError("Cannot reset a running supervisor")
        if self._state == ConnectionState.FAILED:
            self._transition_to(ConnectionState.DISCONNECTED, "reset")
        self._failures = 0
        self._stopping = False

    async def stop(self) -> None:
        """Ask a running ``events()`` loop to finish after the current event."""
        self._stopping = True

    def next_delay(self, failures: int) -> float:
        """Backoff before the next attempt after ``failures`` consecutive failures."""
        return compute_delay(max(failures - 1, 0), self._backoff, self._rng)

    async def events(self) -> AsyncIterator[Notification]:
        """Yield decoded notifications across reconnects.

        Ends when the retry budget is exhausted (state FAILED) or after
        ``stop()``. Malformed payloads are counted and skipped.
        """
        if self._running:
            raise RuntimeError("Supervisor is already running")
        if self._state == ConnectionState.FAILED:
            logger.warning("Push channel is failed; reset() before reopening")
            return

        self._running = True
        self._stopping = False
        try:
            self._transition_to(ConnectionState.CONNECTING, "open")
            while not self._stopping:
                channel = await self._connect()
                if channel is None:
                    if self._failures > self._backoff.max_retries:
                        self._transition_to(
                            ConnectionState.FAILED,
                            f"{self._failures} consecutive connect failures",
                        )
                        return
                    await asyncio.sleep(self.next_delay(self._failures))
                    self._transition_to(ConnectionState.CONNECTING, "retry")
                    continue

                async with aclosing(self._drain(channel)) as stream:
                    async for notification in stream:
                        yield notification

                if self._stopping:
                    break
                self._stats.disconnects += 1
                self._transition_to(ConnectionState.RECONNECTING, self._stats.last_error)
                await asyncio.sleep(self.next_delay(1))
                self._transition_to(ConnectionState.CONNECTING, "reconnect")
        finally:
            self._running = False
            if self._state not in (ConnectionState.FAILED, ConnectionState.DISCONNECTED):
                self._transition_to(ConnectionState.DISCONNECTED, "stopped")

    async def _connect(self) -> Optional[PushChannel]:
        """One CONNECTING attempt; returns None after moving to RECONNECTING."""
        self._stats.connect_attempts += 1
        try:
            channel = await self._client.open_push_channel()
        except ConnectError as e:
            self._failures += 1
            self._stats.connect_failures += 1
            self._stats.last_error = str(e)
            logger.warning("Push channel connect failed (%d): %s", self._failures, e)
            self._transition_to(ConnectionState.RECONNECTING, e.reason)
            return None

        self._failures = 0
        self._channel = channel
        self._transition_to(ConnectionState.CONNECTED, channel.url)
        return channel

    async def _drain(self, channel: PushChannel) -> AsyncIterator[Notification]:
        """Read one connection until it closes, errors or we are stopped."""
        try:
            async for raw in channel:
                try:
                    notification = decode_payload(raw)
                except DecodeError as e:
                    self._stats.decode_errors += 1
                    logger.warning("Skipping push event: %s", e)
                    continue

                self._stats.events_delivered += 1
                yield notification
                if self._stopping:
                    return
            self._stats.last_error = "stream closed by server"
        except TransportError as e:
            self._stats.last_error = str(e)
            logger.warning("Push channel dropped: %s", e)
        finally:
            self._channel = None
            await channel.aclose()
