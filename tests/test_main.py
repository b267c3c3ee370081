"""Tests for the command-line entry point."""

import json
from datetime import datetime, timezone

import httpx
import pytest

import main as cli
from src.notification_sync.client import NotificationClient
from src.notification_sync.config import Priority
from src.notification_sync.models import Notification


def _notification(id="n1", read=False, labels=()):
    return Notification(
        id=id,
        title="Build",
        message="Pipeline finished",
        timestamp=datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc),
        read=read,
        priority=Priority.HIGH,
        labels=labels,
    )


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    monkeypatch.setattr(cli, "configure_logging", lambda config=None: None)


@pytest.fixture
def mock_service(monkeypatch):
    """Route every NotificationClient the CLI creates through a handler."""
    state = {"handler": lambda request: httpx.Response(200, json=[]), "requests": []}

    def handler(request):
        state["requests"].append(request)
        return state["handler"](request)

    monkeypatch.setattr(
        cli,
        "NotificationClient",
        lambda config: NotificationClient(config, transport=httpx.MockTransport(handler)),
    )
    return state


class TestFormatting:
    def test_format_unread(self):
        line = cli.format_notification(_notification(labels=("CI",)))
        assert line.startswith("* high")
        assert "2024-05-01 09:30:00" in line
        assert "Build: Pipeline finished [CI]" in line

    def test_format_read(self):
        assert cli.format_notification(_notification(read=True)).startswith("  high")

    def test_format_feed_summary(self):
        text = cli.format_feed([_notification("a"), _notification("b", read=True)])
        assert text.splitlines()[-1] == "-- 2 notifications, 1 unread"


class TestCommands:
    def test_watch_offline(self, capsys):
        assert cli.main(["--user", "alice", "watch", "--offline", "--duration", "0.05"]) == 0
        out = capsys.readouterr().out
        assert "NOTIFICATIONS for alice (offline)" in out
        assert "-- 2 notifications, 2 unread" in out

    def test_list(self, mock_service, capsys):
        mock_service["handler"] = lambda request: httpx.Response(200, json=[
            {"id": "a", "title": "Hello", "message": "World",
             "timestamp": "2024-05-01T10:00:00Z", "priority": "normal"},
        ])
        assert cli.main(["--url", "http://svc.test", "--user", "bob", "list"]) == 0
        out = capsys.readouterr().out
        assert "Hello: World" in out
        assert mock_service["requests"][0].url.params["userId"] == "bob"

    def test_list_service_error(self, mock_service, capsys):
        mock_service["handler"] = lambda request: httpx.Response(500)
        assert cli.main(["list"]) == 1
        assert "Error:" in capsys.readouterr().err

    def test_send(self, mock_service, capsys):
        mock_service["handler"] = lambda request: httpx.Response(201)
        code = cli.main([
            "send", "--title", "Deploy", "--message", "v2 live",
            "--priority", "low", "--labels", "ops, release", "--recipients", "u1,u2",
        ])
        assert code == 0
        body = json.loads(mock_service["requests"][0].content)
        assert body["title"] == "Deploy"
        assert body["priority"] == "low"
        assert body["labels"] == ["ops", "release"]
        assert [r["id"] for r in body["recipients"]] == ["u1", "u2"]
        assert "sent" in capsys.readouterr().out

    def test_search(self, mock_service, capsys):
        mock_service["handler"] = lambda request: httpx.Response(200, json=[])
        assert cli.main(["search", "--keyword", "deploy", "--labels", "ops"]) == 0
        body = json.loads(mock_service["requests"][0].content)
        assert body["keyword"] == "deploy"
        assert body["labels"] == ["ops"]
        assert "-- 0 notifications, 0 unread" in capsys.readouterr().out

    def test_settings_drive_defaults(self, mock_service, monkeypatch):
        monkeypatch.setenv("NOTIFY_BASE_URL", "http://from-env.test")
        monkeypatch.setenv("NOTIFY_USER_ID", "carol")
        assert cli.main(["list"]) == 0
        request = mock_service["requests"][0]
        assert request.url.host == "from-env.test"
        assert request.url.params["userId"] == "carol"
