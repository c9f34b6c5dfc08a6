"""In-memory collaborators for engine tests."""

import itertools
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Optional

import pytest

from pairchat.models.message import ChangeEvent, MessageRow
from pairchat.notifications import NotificationBackend
from pairchat.participants import ParticipantRegistry
from pairchat.previews import AttachmentFile
from pairchat.transport.base import BlobStore, MessageStore

T0 = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeStore(MessageStore, BlobStore):
    def __init__(self) -> None:
        self.rows: list[dict[str, Any]] = []
        self.inserted: list[dict[str, Any]] = []
        self.updates: list[tuple[str, dict[str, Any]]] = []
        self.bulk_updates: list[dict[str, Any]] = []
        self.uploads: list[str] = []
        self.fail_insert = False
        self.fail_update = False
        self.fail_upload = False
        self.upload_url: Optional[str] = "https://cdn.test/{path}"
        self._ids = itertools.count(100)

    async def select_rows(self) -> list[dict[str, Any]]:
        return list(self.rows)

    async def insert_row(self, row: dict[str, Any]) -> dict[str, Any]:
        if self.fail_insert:
            raise RuntimeError("insert rejected")
        confirmed = dict(row, id=str(next(self._ids)))
        self.inserted.append(confirmed)
        return confirmed

    async def update_row(self, row_id: str, fields: dict[str, Any]) -> None:
        if self.fail_update:
            raise RuntimeError("update rejected")
        self.updates.append((row_id, fields))

    async def update_where(
        self,
        fields: dict[str, Any],
        *,
        sender: str,
        status_in: Optional[Iterable[str]] = None,
    ) -> None:
        if self.fail_update:
            raise RuntimeError("update rejected")
        self.bulk_updates.append({"fields": fields, "sender": sender, "status_in": list(status_in or [])})

    async def upload(self, path: str, data: bytes, content_type: Optional[str] = None) -> Optional[str]:
        if self.fail_upload:
            raise RuntimeError("bucket rejected")
        self.uploads.append(path)
        return self.upload_url.format(path=path) if self.upload_url else None

    def echo(self, index: int = -1) -> ChangeEvent:
        """Change-stream INSERT for a row this store accepted."""
        return ChangeEvent(kind="INSERT", row=MessageRow.model_validate(self.inserted[index]))


class FakeNotifications(NotificationBackend):
    def __init__(self, permission: str = "granted") -> None:
        self._permission = permission
        self.shown: list[dict[str, str]] = []
        self.sounds = 0

    async def request_permission(self):
        self._permission = "granted"
        return self._permission

    def permission(self):
        return self._permission

    def notify(self, title: str, body: str, icon: str, tag: str) -> None:
        self.shown.append({"title": title, "body": body, "icon": icon, "tag": tag})

    def play_sound(self) -> None:
        self.sounds += 1


class BrokenNotifications(FakeNotifications):
    def notify(self, title: str, body: str, icon: str, tag: str) -> None:
        raise RuntimeError("notification center unavailable")


class FakePreviews:
    def __init__(self) -> None:
        self.created: list[str] = []
        self.revoked: list[str] = []

    def create(self, file: AttachmentFile) -> str:
        url = f"blob:local/{len(self.created)}"
        self.created.append(url)
        return url

    def revoke(self, url: str) -> None:
        self.revoked.append(url)


class Clock:
    def __init__(self, start: datetime = T0, step: timedelta = timedelta(seconds=1)):
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        self.now += self.step
        return self.now


def row(id: str, sender: str, message: str, offset: int = 0, **fields: Any) -> MessageRow:
    return MessageRow(
        id=id,
        sender=sender,
        message=message,
        timestamp=T0 + timedelta(seconds=offset),
        **fields,
    )


def insert(r: MessageRow) -> ChangeEvent:
    return ChangeEvent(kind="INSERT", row=r)


def update(r: MessageRow) -> ChangeEvent:
    return ChangeEvent(kind="UPDATE", row=r)


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def previews() -> FakePreviews:
    return FakePreviews()


@pytest.fixture
def registry() -> ParticipantRegistry:
    return ParticipantRegistry.from_mapping({"A": "https://avatars.test/a.jpg", "B": None})
