"""Notification Service REST + SSE Client.

Thin async transport over the notification service: snapshot fetch,
mark-read and delete round trips, and the server-sent-event push
channel. Holds no feed state and performs no retries; retry policy
belongs to the connection supervisor and the reconciliation engine.
"""

from typing import Any, AsyncIterator, Optional, Sequence
import json
import logging

import httpx

from src.logging_config.performance import log_performance
from src.notification_sync.config import SyncConfig
from src.notification_sync.errors import ConnectError, DecodeError, TransportError
from src.notification_sync.models import Notification

logger = logging.getLogger(__name__)


def decode_payload(raw: str) -> Notification:
    """Decode one push-channel payload.

    Raises:
        DecodeError: invalid JSON or an invalid notification record.
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise DecodeError("invalid JSON", str(raw)) from exc
    return Notification.from_api(data)


def decode_records(records: Any) -> list[Notification]:
    """Decode a list of records, dropping (and logging) the malformed ones."""
    if not isinstance(records, list):
        raise TransportError(f"Expected a list of notifications, got {type(records).__name__}")

    notifications = []
    for record in records:
        try:
            notifications.append(Notification.from_api(record))
        except DecodeError as e:
            logger.warning("Dropping malformed notification: %s", e)
    return notifications


# ═══════════════════════════════════════════════════════════════════════
# Push Channel
# ═══════════════════════════════════════════════════════════════════════


class PushChannel:
    """A live text/event-stream connection.

    Iterating yields the raw ``data`` payload of each event, lazily and
    without end until the server closes the stream. A channel can be
    iterated once; open a new one to reconnect.
    """

    def __init__(self, response: httpx.Response, url: str):
        self._response = response
        self.url = url
        self._consumed = False
        self._closed = False

    @property
    def is_closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> AsyncIterator[str]:
        if self._consumed:
            raise RuntimeError("Push channel can only be iterated once")
        self._consumed = True
        return self._iter_payloads()

    async def _iter_payloads(self) -> AsyncIterator[str]:
        data_lines: list[str] = []
        try:
            async for line in self._response.aiter_lines():
                line = line.rstrip("\r\n")

                # Blank line terminates an event
                if not line:
                    if data_lines:
                        payload = "\n".join(data_lines)
                        data_lines = []
                        yield payload
                    continue

                # Comment / keep-alive
                if line.startswith(":"):
                    continue

                name, _, value = line.partition(":")
                if value.startswith(" "):
                    value = value[1:]
                if name == "data":
                    data_lines.append(value)
                # event/id/retry fields carry nothing we use
        except httpx.HTTPError as exc:
            raise TransportError(f"Push channel read failed: {exc}") from exc
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._response.aclose()


# ═══════════════════════════════════════════════════════════════════════
# Client
# ═══════════════════════════════════════════════════════════════════════


class NotificationClient:
    """Notification service client.

    Example:
        async with NotificationClient(SyncConfig(base_url="http://localhost:8080")) as client:
            feed = await client.fetch_snapshot()
            await client.confirm_read(feed[0].id)
            channel = await client.open_push_channel()
            async for raw in channel:
                print(decode_payload(raw))
    """

    def __init__(
        self,
        config: SyncConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._config = config
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None
        self._request_count = 0

    @property
    def config(self) -> SyncConfig:
        return self._config

    @property
    def is_connected(self) -> bool:
        return self._http_client is not None

    @property
    def request_count(self) -> int:
        return self._request_count

    async def connect(self) -> None:
        """Create the underlying HTTP client (idempotent)."""
        if self._http_client is not None:
            return
        self._http_client = httpx.AsyncClient(
            base_url=self._config.base_url,
            headers=self._config.headers,
            timeout=self._config.request_timeout,
            transport=self._transport,
        )
        logger.info("Notification client ready for %s", self._config.base_url)

    async def aclose(self) -> None:
        """Close the HTTP client and release connections."""
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
            logger.info("Notification client closed")

    async def __aenter__(self) -> "NotificationClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def _http(self) -> httpx.AsyncClient:
        if self._http_client is None:
            await self.connect()
        return self._http_client  # type: ignore[return-value]

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        http = await self._http()
        self._request_count += 1
        try:
            return await http.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise TransportError(f"{method} {path} failed: {exc}") from exc

    # ── Snapshot ─────────────────────────────────────────────────────

    @log_performance(threshold_ms=2000)
    async def fetch_snapshot(self) -> list[Notification]:
        """Fetch every current notification for the configured user."""
        resp = await self._request(
            "GET", self._config.snapshot_path, params={"userId": self._config.user_id}
        )
        if not resp.is_success:
            raise TransportError(
                f"Snapshot fetch failed: {resp.status_code}", status_code=resp.status_code
            )
        try:
            records = resp.json()
        except ValueError as exc:
            raise TransportError(f"Snapshot body is not JSON: {exc}") from exc

        # A service with no notifications may answer null
        if records is None:
            records = []
        notifications = decode_records(records)
        logger.info("Fetched snapshot of %d notifications", len(notifications))
        return notifications

    # ── Mutations ────────────────────────────────────────────────────

    async def confirm_read(self, notification_id: str) -> None:
        """Confirm a mark-read. Confirming twice is a no-op success."""
        resp = await self._request("POST", self._config.read_path(notification_id))
        self._check_confirmation(resp, "read", notification_id)

    async def confirm_delete(self, notification_id: str) -> None:
        """Confirm a delete. Deleting an already-deleted ID is a success."""
        resp = await self._request("DELETE", self._config.item_path(notification_id))
        self._check_confirmation(resp, "delete", notification_id)

    def _check_confirmation(self, resp: httpx.Response, action: str, notification_id: str) -> None:
        if resp.is_success:
            return
        if resp.status_code == 404:
            logger.debug("%s %s: not found, nothing left to confirm", action, notification_id)
            return
        raise TransportError(
            f"{action} confirmation for {notification_id} failed: {resp.status_code}",
            status_code=resp.status_code,
        )

    # ── Push Channel ─────────────────────────────────────────────────

    def describe_push_channel(self) -> str:
        """URL of the push channel for the configured user."""
        base = self._config.base_url.rstrip("/")
        return f"{base}{self._config.subscribe_path}?userId={self._config.user_id}"

    async def open_push_channel(self) -> PushChannel:
        """Open the server-sent-event stream.

        Raises:
            ConnectError: request failed or the server refused the stream.
        """
        http = await self._http()
        url = self.describe_push_channel()
        request = http.build_request(
            "GET",
            self._config.subscribe_path,
            params={"userId": self._config.user_id},
            headers={"Accept": "text/event-stream", "Cache-Control": "no-cache"},
            # Events may be minutes apart; only the connect phase is bounded
            timeout=httpx.Timeout(self._config.request_timeout, read=None),
        )
        self._request_count += 1
        try:
            response = await http.send(request, stream=True)
        except httpx.HTTPError as exc:
            raise ConnectError(url, str(exc) or type(exc).__name__) from exc

        if response.status_code != 200:
            await response.aclose()
            raise ConnectError(
                url, f"unexpected status code {response.status_code}",
                status_code=response.status_code,
            )

        logger.info("Push channel open: %s", url)
        return PushChannel(response, url)

    # ── Publishing & Search ──────────────────────────────────────────

    async def send_notification(
        self,
        notification: Notification,
        recipients: Optional[Sequence[str]] = None,
        app_name: str = "",
    ) -> None:
        """Publish a notification to the service."""
        body = notification.to_dict()
        body["recipients"] = [
            {"type": "user", "id": r} for r in (recipients or [self._config.user_id])
        ]
        if notification.attachment is not None:
            body.pop("attachment")
            body["attachments"] = [{
                "id": notification.attachment.id,
                "type": notification.attachment.type.value,
                "url": notification.attachment.data.get("url", ""),
            }]
        if app_name:
            body["appName"] = app_name

        resp = await self._request("POST", self._config.snapshot_path, json=body)
        if not resp.is_success:
            raise TransportError(
                f"Send failed: {resp.status_code} {resp.text[:200]}",
                status_code=resp.status_code,
            )
        logger.info("Sent notification %s", notification.id)

    async def search_notifications(
        self,
        keyword: str = "",
        title: str = "",
        message: str = "",
        labels: Optional[Sequence[str]] = None,
        app_name: str = "",
        start_date: str = "",
        end_date: str = "",
    ) -> list[Notification]:
        """Search notifications for the configured user."""
        params = {
            "keyword": keyword,
            "title": title,
            "message": message,
            "labels": list(labels or []),
            "appName": app_name,
            "startDate": start_date,
            "endDate": end_date,
            "userId": self._config.user_id,
        }
        resp = await self._request("POST", self._config.search_path, json=params)
        if not resp.is_success:
            raise TransportError(
                f"Search failed: {resp.status_code}", status_code=resp.status_code
            )
        try:
            records = resp.json()
        except ValueError as exc:
            raise TransportError(f"Search body is not JSON: {exc}") from exc
        return decode_records(records or [])
