"""Notification gate and notifier."""

import pytest

from conftest import BrokenNotifications, FakeNotifications, insert, row, update

from pairchat.notifications import Notifier, should_notify


def test_gate_requires_remote_insert_in_background():
    remote = insert(row("1", "B", "hello"))
    assert should_notify(remote, "A", foreground=False) is True
    assert should_notify(remote, "A", foreground=True) is False
    assert should_notify(insert(row("2", "A", "mine")), "A", foreground=False) is False
    assert should_notify(update(row("1", "B", "hello", status="read")), "A", foreground=False) is False


def test_dispatch_shows_notification(registry):
    backend = FakeNotifications("granted")
    notifier = Notifier(backend, registry)
    title = notifier.dispatch(insert(row("1", "B", "hello")))

    assert title == "New message from B"
    assert backend.sounds == 1
    assert backend.shown == [{
        "title": "New message from B",
        "body": "hello",
        "icon": "https://ui-avatars.com/api/?name=B",
        "tag": "new-message",
    }]


def test_dispatch_without_permission_only_plays_sound(registry, caplog):
    backend = FakeNotifications("default")
    notifier = Notifier(backend, registry)
    assert notifier.dispatch(insert(row("1", "B", "hello"))) is None
    assert backend.shown == []
    assert backend.sounds == 1
    assert "permission not granted" in caplog.text


@pytest.mark.asyncio
async def test_request_permission_updates_state(registry):
    notifier = Notifier(FakeNotifications("default"), registry)
    assert notifier.permission == "default"
    assert await notifier.request_permission() == "granted"
    assert notifier.permission == "granted"


def test_notify_failure_is_logged_not_raised(registry, caplog):
    backend = BrokenNotifications("granted")
    notifier = Notifier(backend, registry)
    assert notifier.dispatch(insert(row("1", "B", "hello"))) is None
    assert backend.sounds == 1
    assert "Error showing notification" in caplog.text
