"""
AsyncPairChat / PairChat — main clients.
"""

import asyncio
from pathlib import Path
from typing import Any, AsyncGenerator, Optional

from pairchat.config import CONFIG_FILE, ChatConfig, load_config
from pairchat.engine import RenderedMessage, SyncEngine
from pairchat.errors import ConnectionError
from pairchat.models.message import AttachmentKind, Message
from pairchat.notifications import NotificationBackend, NotificationPermission, Notifier
from pairchat.previews import AttachmentFile, PreviewFactory
from pairchat.read_tracker import ObservationHandle
from pairchat.transport.http import RestStore
from pairchat.transport.socketio import ChangeStreamManager


class AsyncPairChat:
    """Async two-party chat client (primary)."""

    def __init__(
        self,
        config: Optional[ChatConfig] = None,
        *,
        config_path: Path = CONFIG_FILE,
        notifications: Optional[NotificationBackend] = None,
        previews: Optional[PreviewFactory] = None,
        store: Optional[RestStore] = None,
        stream: Optional[ChangeStreamManager] = None,
        **overrides: Any,
    ):
        self.config = config or load_config(config_path, **overrides)
        if not self.config.base_url or not self.config.participant:
            raise ConnectionError("base_url and participant required.")
        registry = self.config.registry()
        if not registry.others(self.config.participant):
            raise ConnectionError("participants must name at least one other identity.")

        self.store = store or RestStore(
            self.config.base_url,
            api_key=self.config.api_key,
            table=self.config.table,
            bucket=self.config.bucket,
        )
        self._stream = stream or ChangeStreamManager(
            self.config.base_url,
            api_key=self.config.api_key,
            table=self.config.table,
            ready_timeout=self.config.ready_timeout,
        )
        self._notifier = Notifier(notifications, registry) if notifications else None
        self.engine = SyncEngine(
            self.store, self.store, self.config.participant, registry,
            notifier=self._notifier,
            previews=previews,
            read_threshold=self.config.read_threshold,
            snippet_length=self.config.snippet_length,
        )
        self._remove_handler: Optional[Any] = None

    @property
    def connected(self) -> bool:
        return self._stream.connected

    @property
    def participant(self) -> str:
        return self.config.participant

    async def connect(self) -> None:
        """Subscribe to the change stream, load history and run the read catch-up."""
        # Subscribe first so nothing written during the history load is missed.
        self._remove_handler = self._stream.add_handler(self.engine.handle_event)
        try:
            await self._stream.connect()
            await self.engine.start_session()
        except Exception as e:
            await self.disconnect()
            raise ConnectionError(f"Failed to start chat session: {e}") from e

    async def disconnect(self) -> None:
        self.engine.shutdown()
        if self._remove_handler:
            self._remove_handler()
            self._remove_handler = None
        await self._stream.disconnect()

    async def close(self) -> None:
        await self.disconnect()
        await self.store.close()

    async def send_text(self, content: str, reply_to: Optional[str] = None) -> Optional[Message]:
        """Send a text message; raises WriteFailure after rollback."""
        return await self.engine.send_text(content, reply_to=reply_to)

    async def send_attachment(
        self, file: AttachmentFile, kind: AttachmentKind, reply_to: Optional[str] = None,
    ) -> Message:
        """Upload and send a file; raises UploadFailure/WriteFailure after rollback."""
        return await self.engine.send_attachment(file, kind, reply_to=reply_to)

    async def send_file(self, path: Path, kind: AttachmentKind, reply_to: Optional[str] = None) -> Message:
        path = Path(path)
        return await self.send_attachment(
            AttachmentFile(name=path.name, data=path.read_bytes()), kind, reply_to=reply_to,
        )

    def messages(self) -> list[RenderedMessage]:
        return self.engine.render()

    def set_foreground(self, foreground: bool) -> None:
        self.engine.set_foreground(foreground)

    def register_visible(self, message_id: str) -> Optional[ObservationHandle]:
        return self.engine.register_visible(message_id)

    async def report_visibility(self, message_id: str, ratio: float) -> bool:
        return await self.engine.report_visibility(message_id, ratio)

    async def request_notification_permission(self) -> NotificationPermission:
        if self._notifier is None:
            return "denied"
        return await self._notifier.request_permission()

    async def updates(self) -> AsyncGenerator[list[RenderedMessage], None]:
        """Yield the rendered log after every change, until disconnected."""
        queue: asyncio.Queue[None] = asyncio.Queue()
        remove = self.engine.add_listener(lambda _snapshot: queue.put_nowait(None))
        try:
            while self.connected:
                try:
                    await asyncio.wait_for(queue.get(), timeout=5.0)
                except asyncio.TimeoutError:
                    continue
                while not queue.empty():
                    queue.get_nowait()
                yield self.engine.render()
        finally:
            remove()


class PairChat:
    """Sync wrapper around AsyncPairChat. Runs the event loop internally."""

    def __init__(self, *args: Any, **kwargs: Any):
        self._loop = asyncio.new_event_loop()
        self._async = AsyncPairChat(*args, **kwargs)

    def _run(self, coro: Any) -> Any:
        return self._loop.run_until_complete(coro)

    @property
    def connected(self) -> bool:
        return self._async.connected

    @property
    def engine(self) -> SyncEngine:
        return self._async.engine

    def connect(self) -> None:
        self._run(self._async.connect())

    def disconnect(self) -> None:
        self._run(self._async.disconnect())

    def close(self) -> None:
        self._run(self._async.close())
        self._loop.close()

    def send_text(self, content: str, reply_to: Optional[str] = None) -> Optional[Message]:
        return self._run(self._async.send_text(content, reply_to=reply_to))

    def send_file(self, path: Path, kind: AttachmentKind, reply_to: Optional[str] = None) -> Message:
        return self._run(self._async.send_file(path, kind, reply_to=reply_to))

    def messages(self) -> list[RenderedMessage]:
        return self._async.messages()

    def set_foreground(self, foreground: bool) -> None:
        self._async.set_foreground(foreground)
