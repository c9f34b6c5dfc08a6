"""
Sync engine — the single entry point for the presentation layer.

Flow:
- user intents go through the optimistic writer (log + remote write)
- change-stream events go through the merger (reconcile or append)
- replies are re-resolved after every mutation
- rendered messages report visibility to the read tracker
- remote inserts pass the notification gate (side effect only)

All of it runs on one event loop; the only suspension points are remote
writes and uploads.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from pydantic import BaseModel

from pairchat.log import LogListener, MessageLog
from pairchat.merger import ChangeStreamMerger
from pairchat.models.events import ChangeKind
from pairchat.models.message import (
    Attachment,
    AttachmentKind,
    ChangeEvent,
    ConfirmedRef,
    Message,
    MessageRow,
    MessageStatus,
    ReplyPreview,
)
from pairchat.notifications import Notifier, should_notify
from pairchat.optimistic import OptimisticWriter
from pairchat.participants import ParticipantRegistry
from pairchat.previews import AttachmentFile, PreviewFactory
from pairchat.read_tracker import DEFAULT_VISIBILITY_THRESHOLD, ObservationHandle, ReadTracker
from pairchat.replies import DEFAULT_SNIPPET_LENGTH
from pairchat.transport.base import BlobStore, MessageStore

logger = logging.getLogger("pairchat.engine")


class RenderedMessage(BaseModel):
    """A log entry as the presentation layer displays it."""
    id: str
    sender: str
    avatar_url: str
    content: str
    timestamp: datetime
    is_own: bool
    pending: bool
    status: MessageStatus
    attachment: Optional[Attachment] = None
    reply_to: Optional[ReplyPreview] = None


class SyncEngine:
    def __init__(
        self,
        store: MessageStore,
        blobs: BlobStore,
        participant: str,
        registry: ParticipantRegistry,
        notifier: Optional[Notifier] = None,
        previews: Optional[PreviewFactory] = None,
        read_threshold: float = DEFAULT_VISIBILITY_THRESHOLD,
        snippet_length: int = DEFAULT_SNIPPET_LENGTH,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        if participant not in registry:
            raise ValueError(f"Unknown participant {participant!r}")
        if not registry.others(participant):
            raise ValueError(f"No other participant registered besides {participant!r}")
        self._store = store
        self._participant = participant
        self._registry = registry
        self._notifier = notifier
        self._foreground = True

        self.log = MessageLog()
        self._writer = OptimisticWriter(
            self.log, store, blobs, participant,
            previews=previews, snippet_length=snippet_length,
            clock=clock,
        )
        self._merger = ChangeStreamMerger(self.log, participant, snippet_length=snippet_length)
        self._reads = ReadTracker(self.log, store, participant, registry, threshold=read_threshold)

    @property
    def participant(self) -> str:
        return self._participant

    @property
    def foreground(self) -> bool:
        return self._foreground

    def set_foreground(self, foreground: bool) -> None:
        self._foreground = foreground

    # --- session ---

    async def load_history(self) -> int:
        """Load all stored rows into the log. Returns the number of rows."""
        raw = await self._store.select_rows()
        rows = [MessageRow.model_validate(r) for r in raw]
        self._merger.apply_rows(rows)
        return len(rows)

    async def start_session(self) -> None:
        self._reads.open()
        await self.load_history()
        await self._reads.catch_up()

    def shutdown(self) -> None:
        self._reads.shutdown()

    # --- user intents ---

    async def send_text(self, content: str, reply_to: Optional[str] = None) -> Optional[Message]:
        return await self._writer.send_text(content, reply_to=reply_to)

    async def send_attachment(
        self, file: AttachmentFile, kind: AttachmentKind, reply_to: Optional[str] = None,
    ) -> Message:
        return await self._writer.send_attachment(file, kind, reply_to=reply_to)

    def register_visible(self, message_id: str) -> Optional[ObservationHandle]:
        return self._reads.register(message_id)

    async def report_visibility(self, message_id: str, ratio: float) -> bool:
        return await self._reads.report_visibility(message_id, ratio)

    # --- change stream ---

    def handle_event(self, event: ChangeEvent) -> Message:
        is_new = event.row.id is None or ConfirmedRef(remote_id=event.row.id) not in self.log
        stored = self._merger.apply(event)
        if is_new and should_notify(event, self._participant, self._foreground):
            if self._notifier is not None:
                self._notifier.dispatch(event)
        elif event.kind == ChangeKind.INSERT and event.row.sender != self._participant:
            logger.debug(f"Not notifying for {stored.id}: foreground={self._foreground} new={is_new}")
        return stored

    # --- rendering ---

    def snapshot(self) -> list[Message]:
        return self.log.snapshot()

    def render(self) -> list[RenderedMessage]:
        return [self._render(m) for m in self.log.snapshot()]

    def add_listener(self, listener: LogListener) -> Callable[[], None]:
        return self.log.add_listener(listener)

    def _render(self, message: Message) -> RenderedMessage:
        return RenderedMessage(
            id=message.id,
            sender=message.sender,
            avatar_url=self._registry.avatar_for(message.sender),
            content=message.content,
            timestamp=message.timestamp,
            is_own=message.is_own(self._participant),
            pending=message.provisional,
            status=message.display_status(self._participant),
            attachment=message.attachment,
            reply_to=message.reply_to,
        )
