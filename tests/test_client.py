"""AsyncPairChat wiring with a mocked REST backend and an in-process stream."""

import asyncio
import json

import httpx
import pytest

from conftest import FakeNotifications

from pairchat import AsyncPairChat, ChatConfig, ConnectionError, PairChat
from pairchat.models.message import ChangeEvent, MessageRow
from pairchat.transport.http import RestStore


class FakeStream:
    def __init__(self, fail: bool = False) -> None:
        self._handlers = []
        self._connected = False
        self._fail = fail

    @property
    def connected(self) -> bool:
        return self._connected

    def add_handler(self, handler):
        self._handlers.append(handler)
        return lambda: self._handlers.remove(handler)

    def push(self, event) -> None:
        for handler in list(self._handlers):
            handler(event)

    async def connect(self) -> None:
        if self._fail:
            raise TimeoutError("no ready")
        self._connected = True

    async def disconnect(self) -> None:
        self._connected = False


class Backend:
    """Minimal PostgREST double: stores rows, assigns ids."""

    def __init__(self) -> None:
        self.rows = []
        self.patches = []
        self.uploads = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(200, json=self.rows)
        if request.method == "POST" and request.url.path.startswith("/storage/"):
            self.uploads.append(request.url.path)
            return httpx.Response(200, json={})
        if request.method == "POST":
            row = dict(json.loads(request.content)[0], id=len(self.rows) + 1)
            self.rows.append(row)
            return httpx.Response(201, json=[row])
        if request.method == "PATCH":
            self.patches.append(dict(request.url.params))
            return httpx.Response(204)
        return httpx.Response(405)


def make_client(backend: Backend, stream: FakeStream, **kwargs) -> AsyncPairChat:
    config = ChatConfig(base_url="https://db.test", participant="A", participants={"B": None})
    store = RestStore(config.base_url, transport=httpx.MockTransport(backend))
    return AsyncPairChat(config, store=store, stream=stream, **kwargs)


def test_requires_base_url_and_participant():
    with pytest.raises(ConnectionError):
        AsyncPairChat(ChatConfig())


def test_requires_another_participant():
    with pytest.raises(ConnectionError):
        AsyncPairChat(ChatConfig(base_url="https://db.test", participant="A"), stream=FakeStream())


@pytest.mark.asyncio
async def test_connect_loads_history_and_sweeps_reads():
    backend = Backend()
    backend.rows.append({
        "id": 1, "sender": "B", "message": "welcome", "timestamp": "2025-03-01T12:00:00Z", "status": "sent",
    })
    stream = FakeStream()
    client = make_client(backend, stream)

    await client.connect()

    assert client.connected
    assert [m.content for m in client.messages()] == ["welcome"]
    assert backend.patches == [{"sender": "eq.B", "status": "in.(sent,delivered)"}]
    await client.close()
    assert not client.connected


@pytest.mark.asyncio
async def test_send_and_echo_through_stream():
    backend = Backend()
    stream = FakeStream()
    client = make_client(backend, stream)
    await client.connect()

    await client.send_text("hi")
    assert client.messages()[0].pending

    stream.push(ChangeEvent(kind="INSERT", row=MessageRow.model_validate(backend.rows[0])))
    messages = client.messages()
    assert len(messages) == 1
    assert messages[0].id == "1"
    assert messages[0].status == "delivered"
    await client.close()


@pytest.mark.asyncio
async def test_failed_connect_raises_connection_error():
    client = make_client(Backend(), FakeStream(fail=True))
    with pytest.raises(ConnectionError):
        await client.connect()
    assert not client.connected


@pytest.mark.asyncio
async def test_notification_permission():
    client = make_client(Backend(), FakeStream(), notifications=FakeNotifications("default"))
    assert await client.request_notification_permission() == "granted"

    silent = make_client(Backend(), FakeStream())
    assert await silent.request_notification_permission() == "denied"


@pytest.mark.asyncio
async def test_send_file_uploads_then_inserts(tmp_path):
    path = tmp_path / "holiday pic.jpg"
    path.write_bytes(b"jpeg")
    backend = Backend()
    client = make_client(backend, FakeStream())
    await client.connect()

    message = await client.send_file(path, "image")

    assert message.id.startswith("temp-file-")
    assert backend.uploads[0].startswith("/storage/v1/object/chat-uploads/A/")
    assert backend.uploads[0].endswith("_holiday_pic.jpg")
    assert backend.rows[0]["file_type"] == "image"
    assert backend.rows[0]["message"] == "Shared a image."
    await client.close()


@pytest.mark.asyncio
async def test_updates_yield_rendered_log():
    stream = FakeStream()
    client = make_client(Backend(), stream)
    await client.connect()

    updates = client.updates()
    pending = asyncio.ensure_future(updates.__anext__())
    await asyncio.sleep(0)
    stream.push(ChangeEvent(kind="INSERT", row=MessageRow(
        id="9", sender="B", message="hello", timestamp="2025-03-01T12:00:00Z",
    )))

    rendered = await asyncio.wait_for(pending, timeout=1.0)
    assert [m.content for m in rendered] == ["hello"]
    await updates.aclose()
    await client.close()


def test_sync_wrapper():
    backend = Backend()
    config = ChatConfig(base_url="https://db.test", participant="A", participants={"B": None})
    client = PairChat(
        config,
        store=RestStore(config.base_url, transport=httpx.MockTransport(backend)),
        stream=FakeStream(),
    )
    client.connect()
    assert client.connected

    message = client.send_text("sync hello")
    assert message.provisional
    assert [m.content for m in client.messages()] == ["sync hello"]
    assert backend.rows[0]["message"] == "sync hello"
    client.close()
