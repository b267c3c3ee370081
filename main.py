"""CLI entry point: python main.py watch --duration 60"""

import argparse
import asyncio
import sys
from datetime import datetime, timezone

from src.logging_config import LogFormat, LoggingConfig, LogLevel, configure_logging
from src.notification_sync import (
    Notification,
    NotificationClient,
    NotificationStore,
    Priority,
    SyncConfig,
    SyncError,
)
from src.settings import get_settings


def format_notification(n: Notification) -> str:
    """One line per notification: read marker, priority, time, title, message."""
    marker = " " if n.read else "*"
    labels = f" [{', '.join(n.labels)}]" if n.labels else ""
    return (
        f"{marker} {n.priority.value:6s} {n.timestamp.strftime('%Y-%m-%d %H:%M:%S')}  "
        f"{n.title}: {n.message}{labels}"
    )


def format_feed(notifications) -> str:
    lines = [format_notification(n) for n in notifications]
    unread = sum(1 for n in notifications if not n.read)
    lines.append(f"-- {len(notifications)} notifications, {unread} unread")
    return "\n".join(lines)


async def watch(config: SyncConfig, duration: float) -> None:
    async with NotificationStore(config) as store:
        print("=" * 60)
        print(f"NOTIFICATIONS for {config.user_id} "
              f"({'offline' if config.offline_mode else config.base_url})")
        print("=" * 60)
        print(format_feed(store.notifications))

        seen = {n.id for n in store.notifications}

        def on_change(feed):
            for n in feed:
                if n.id not in seen:
                    seen.add(n.id)
                    print(format_notification(n))

        store.subscribe(on_change)
        await asyncio.sleep(duration)
        print(f"-- {store.unread_count} unread at exit")


async def list_once(config: SyncConfig) -> None:
    async with NotificationClient(config) as client:
        print(format_feed(await client.fetch_snapshot()))


async def send(config: SyncConfig, args: argparse.Namespace) -> None:
    now = datetime.now(timezone.utc)
    notification = Notification(
        id=f"notif-{int(now.timestamp() * 1e9)}",
        title=args.title,
        message=args.message,
        timestamp=now,
        priority=Priority(args.priority),
        labels=tuple(l.strip() for l in args.labels.split(",") if l.strip()),
    )
    recipients = [r.strip() for r in args.recipients.split(",") if r.strip()] or [config.user_id]
    async with NotificationClient(config) as client:
        await client.send_notification(notification, recipients=recipients, app_name=args.app)
    print(f"Notification {notification.id} sent")


async def search(config: SyncConfig, args: argparse.Namespace) -> None:
    labels = [l.strip() for l in args.labels.split(",") if l.strip()]
    async with NotificationClient(config) as client:
        results = await client.search_notifications(keyword=args.keyword, labels=labels)
    print(format_feed(results))


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Notification sync - watch, list, send and search notifications"
    )
    parser.add_argument("--url", default=None, help="Notification service base URL")
    parser.add_argument("--user", default=None, help="User ID to sync for")
    parser.add_argument(
        "--verbose", action="store_true",
        help="Log at DEBUG level"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_watch = sub.add_parser("watch", help="Follow the live feed")
    p_watch.add_argument("--duration", type=float, default=60.0, help="Seconds to watch")
    p_watch.add_argument(
        "--offline", action="store_true",
        help="Use the synthetic feed instead of the service"
    )

    sub.add_parser("list", help="Print one snapshot")

    p_send = sub.add_parser("send", help="Publish a notification")
    p_send.add_argument("--title", required=True)
    p_send.add_argument("--message", required=True)
    p_send.add_argument("--priority", choices=[p.value for p in Priority], default="medium")
    p_send.add_argument("--labels", default="", help="Comma-separated labels")
    p_send.add_argument("--recipients", default="", help="Comma-separated user IDs")
    p_send.add_argument("--app", default="", help="App name")

    p_search = sub.add_parser("search", help="Search notifications")
    p_search.add_argument("--keyword", default="")
    p_search.add_argument("--labels", default="", help="Comma-separated labels")

    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(LoggingConfig(
        level=LogLevel.DEBUG if args.verbose else LogLevel(settings.log_level.upper()),
        format=LogFormat(settings.log_format.lower()),
    ))

    config = SyncConfig.from_settings(settings)
    if args.url:
        config.base_url = args.url
    if args.user:
        config.user_id = args.user
    if getattr(args, "offline", False):
        config.offline_mode = True

    try:
        if args.command == "watch":
            asyncio.run(watch(config, args.duration))
        elif args.command == "list":
            asyncio.run(list_once(config))
        elif args.command == "send":
            asyncio.run(send(config, args))
        elif args.command == "search":
            asyncio.run(search(config, args))
    except SyncError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())
