"""Data models for the Notification Sync Engine."""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Optional
import re
import uuid

from src.notification_sync.config import (
    AttachmentType,
    MutationKind,
    Priority,
    PRIORITY_ALIASES,
)
from src.notification_sync.errors import DecodeError

_FRACTION = re.compile(r"\.(\d+)")


def _new_id(prefix: str = "") -> str:
    return f"{prefix}{uuid.uuid4().hex[:16]}"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO 8601 / RFC 3339 string or epoch seconds into an aware datetime.

    Nanosecond fractions (as emitted by Go services) are truncated to
    microseconds. Naive values are taken as UTC.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            parsed = datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as exc:
            raise DecodeError("timestamp out of range", repr(value)) from exc
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise DecodeError("unparseable timestamp", str(value)) from exc
    else:
        raise DecodeError("missing timestamp", repr(value))

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_priority(value: Any) -> Priority:
    """Map a wire priority string onto Priority; unknown values are errors."""
    if isinstance(value, Priority):
        return value
    key = str(value or "").strip().lower()
    try:
        return PRIORITY_ALIASES[key]
    except KeyError:
        raise DecodeError("unknown priority", repr(value)) from None


def parse_attachment_type(value: Any) -> AttachmentType:
    key = str(value or "").strip().lower()
    try:
        return AttachmentType(key)
    except ValueError:
        return AttachmentType.OTHER


@dataclass(frozen=True)
class Attachment:
    """Reference to a document, task or other object carried by a notification.

    ``data`` is opaque to the sync engine; only presentation code reads it.
    """

    id: str
    type: AttachmentType = AttachmentType.OTHER
    title: str = ""
    data: dict = field(default_factory=dict, compare=False, hash=False)

    @classmethod
    def from_api(cls, data: dict) -> "Attachment":
        """Accept either the UI attachment shape or the service's ``attachments[]`` entry."""
        kind = data.get("type", "")
        payload = data.get("data")
        if payload is None:
            payload = {"url": data["url"]} if data.get("url") else {}
        return cls(
            id=str(data.get("id", "")),
            type=parse_attachment_type(kind),
            title=data.get("title") or str(kind),
            data=dict(payload) if isinstance(payload, dict) else {"content": payload},
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type.value,
            "title": self.title,
            "data": dict(self.data),
        }


@dataclass(frozen=True)
class Notification:
    """A single feed entry.

    Identity is the ``id`` alone: two values with the same ID describe the
    same notification, which is what dedup keys on.
    """

    id: str
    title: str
    message: str
    timestamp: datetime
    read: bool = False
    priority: Priority = Priority.LOW
    labels: tuple[str, ...] = ()
    attachment: Optional[Attachment] = None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Notification):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    def same_content(self, other: "Notification") -> bool:
        """Field-by-field comparison, unlike ``==`` which compares identity."""
        return (
            self.id == other.id
            and self.title == other.title
            and self.message == other.message
            and self.timestamp == other.timestamp
            and self.read == other.read
            and self.priority == other.priority
            and self.labels == other.labels
            and self.attachment == other.attachment
        )

    def as_read(self) -> "Notification":
        """Return a copy with the read flag set."""
        if self.read:
            return self
        return replace(self, read=True)

    @classmethod
    def from_api(cls, data: Any) -> "Notification":
        """Decode one notification record.

        Raises:
            DecodeError: missing ID, unparseable timestamp or unknown priority.
        """
        if not isinstance(data, dict):
            raise DecodeError("record is not an object", repr(data))

        notification_id = data.get("id")
        if notification_id is None or str(notification_id).strip() == "":
            raise DecodeError("missing id", repr(data))

        labels = data.get("labels") or []
        if not isinstance(labels, list) or not all(isinstance(l, str) for l in labels):
            raise DecodeError("labels must be a list of strings", repr(data))

        attachments = data.get("attachments") or []
        if not isinstance(attachments, list) or not all(isinstance(a, dict) for a in attachments):
            raise DecodeError("attachments must be a list of objects", repr(data))

        single = data.get("attachment")
        if single is not None and not isinstance(single, dict):
            raise DecodeError("attachment must be an object", repr(data))

        try:
            attachment = None
            if single is not None:
                attachment = Attachment.from_api(single)
            elif attachments:
                attachment = Attachment.from_api(attachments[0])

            return cls(
                id=str(notification_id),
                title=str(data.get("title") or ""),
                message=str(data.get("message") or ""),
                timestamp=parse_timestamp(data.get("timestamp")),
                read=bool(data.get("read", False)),
                priority=parse_priority(data.get("priority")),
                labels=tuple(labels),
                attachment=attachment,
            )
        except (TypeError, ValueError, KeyError, OverflowError, OSError) as exc:
            raise DecodeError(f"malformed field: {exc}", repr(data)) from exc

    def to_dict(self) -> dict:
        result: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            "read": self.read,
            "priority": self.priority.value,
            "labels": list(self.labels),
        }
        if self.attachment is not None:
            result["attachment"] = self.attachment.to_dict()
        return result


@dataclass
class PendingMutation:
    """A local change that the remote service has not acknowledged yet."""

    notification_id: str
    kind: MutationKind
    issued_at: datetime = field(default_factory=_now)
    attempts: int = 0
    mutation_id: str = field(default_factory=_new_id)

    def to_dict(self) -> dict:
        return {
            "mutation_id": self.mutation_id,
            "notification_id": self.notification_id,
            "kind": self.kind.value,
            "issued_at": self.issued_at.isoformat(),
            "attempts": self.attempts,
        }


@dataclass
class FeedPosition:
    """Cursor over the in-memory window: newest timestamp plus every ID observed."""

    last_seen: Optional[datetime] = None
    seen_ids: set[str] = field(default_factory=set)

    def __contains__(self, notification_id: str) -> bool:
        return notification_id in self.seen_ids

    def observe(self, notification: Notification) -> None:
        self.seen_ids.add(notification.id)
        if self.last_seen is None or notification.timestamp > self.last_seen:
            self.last_seen = notification.timestamp

    def rebuild(self, notifications) -> None:
        """Reset to exactly the given notifications (used on a fresh snapshot)."""
        self.seen_ids = set()
        self.last_seen = None
        for n in notifications:
            self.observe(n)
