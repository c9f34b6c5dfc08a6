"""
Change-stream subscription over Socket.IO.

Connect with auth={apikey}, wait for `ready`, subscribe to the message
table, then every `change` event is parsed and handed to the registered
handlers in delivery order (per-connection FIFO).
"""

import asyncio
import logging
from typing import Any, Callable, Optional

import socketio

from pairchat.models.events import StreamEvent
from pairchat.models.message import ChangeEvent
from pairchat.transport.envelope import parse_change

SOCKETIO_PATH = "/realtime/socket.io/"

logger = logging.getLogger("pairchat.transport.socketio")

ChangeHandler = Callable[[ChangeEvent], None]


class ChangeStreamManager:
    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        table: str = "messages",
        transports: Optional[list[str]] = None,
        ready_timeout: float = 15.0,
    ):
        self._base_url = base_url
        self._api_key = api_key
        self._table = table
        self._transports = transports or ["websocket"]
        self._ready_timeout = ready_timeout
        self._sio: Optional[socketio.AsyncClient] = None
        self._connected = False
        self._handlers: list[ChangeHandler] = []

    @property
    def connected(self) -> bool:
        return self._connected and self._sio is not None and self._sio.connected

    def add_handler(self, handler: ChangeHandler) -> Callable[[], None]:
        """Add a change handler. Returns a cleanup function."""
        self._handlers.append(handler)
        def remove() -> None:
            try:
                self._handlers.remove(handler)
            except ValueError:
                pass
        return remove

    def dispatch(self, raw: Any) -> Optional[ChangeEvent]:
        """Parse one raw change payload and hand it to every handler."""
        event = parse_change(raw, table=self._table)
        if event is None:
            logger.debug(f"Ignoring change payload: {raw!r}")
            return None
        for handler in list(self._handlers):
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Change handler failed for {event.kind} {event.row.id}: {e}")
        return event

    async def connect(self) -> None:
        """Connect, wait for `ready` and subscribe to the table."""
        if self._sio and self._sio.connected:
            return

        self._sio = socketio.AsyncClient()
        ready_event = asyncio.Event()

        @self._sio.on(StreamEvent.READY)
        async def on_ready(*_args: Any) -> None:
            self._connected = True
            ready_event.set()

        @self._sio.on(StreamEvent.CHANGE)
        async def on_change(data: Any) -> None:
            self.dispatch(data)

        @self._sio.event
        async def disconnect(_reason: str = "") -> None:
            self._connected = False

        await self._sio.connect(
            self._base_url,
            auth={"apikey": self._api_key} if self._api_key else None,
            transports=self._transports,
            socketio_path=SOCKETIO_PATH,
        )

        try:
            await asyncio.wait_for(ready_event.wait(), timeout=self._ready_timeout)
        except asyncio.TimeoutError:
            await self._sio.disconnect()
            raise TimeoutError(f"Timed out waiting for 'ready' event after {self._ready_timeout}s")

        await self._sio.emit(StreamEvent.SUBSCRIBE, {"table": self._table})

    async def disconnect(self) -> None:
        self._connected = False
        if self._sio:
            await self._sio.disconnect()
            self._sio = None
