"""
Visibility-driven read tracking.

The presentation layer registers rendered messages and reports how much of
each one is inside the viewport. A remote, unread, confirmed message that
crosses the visibility threshold gets exactly one mark-read request and is
then no longer observed. The status change itself comes back through the
change stream.
"""

import logging
from typing import Optional

from pairchat.errors import ReadMarkFailure
from pairchat.log import MessageLog
from pairchat.models.message import Message
from pairchat.participants import ParticipantRegistry
from pairchat.transport.base import MessageStore

logger = logging.getLogger("pairchat.read_tracker")

DEFAULT_VISIBILITY_THRESHOLD = 0.5
UNREAD_STATUSES = ("sent", "delivered")


class ObservationHandle:
    """Scoped registration for one message. Release on unmount."""

    __slots__ = ("message_id", "_tracker", "_active")

    def __init__(self, tracker: "ReadTracker", message_id: str):
        self.message_id = message_id
        self._tracker = tracker
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def release(self) -> None:
        if not self._active:
            return
        self._active = False
        self._tracker._unregister(self)

    def __enter__(self) -> "ObservationHandle":
        return self

    def __exit__(self, *exc: object) -> None:
        self.release()

    def __repr__(self) -> str:
        return f"ObservationHandle(message_id={self.message_id!r}, active={self._active})"


class ReadTracker:
    def __init__(
        self,
        log: MessageLog,
        store: MessageStore,
        participant: str,
        registry: ParticipantRegistry,
        threshold: float = DEFAULT_VISIBILITY_THRESHOLD,
    ):
        if not 0.0 < threshold <= 1.0:
            raise ValueError(f"threshold must be in (0, 1], got {threshold}")
        self._log = log
        self._store = store
        self._participant = participant
        self._registry = registry
        self._threshold = threshold
        self._observed: dict[str, ObservationHandle] = {}
        self._requested: set[str] = set()
        self._caught_up = False
        self._closed = False
        self._log.add_listener(self._prune_requested)

    @property
    def observed(self) -> list[str]:
        return list(self._observed)

    @property
    def requested(self) -> list[str]:
        """Ids with a mark-read request that the log has not yet reported as read."""
        return sorted(self._requested)

    def eligible(self, message: Message) -> bool:
        return (
            not message.provisional
            and not message.is_own(self._participant)
            and message.status != "read"
        )

    def register(self, message_id: str) -> Optional[ObservationHandle]:
        """Start observing a rendered message. None if it needs no read receipt."""
        if self._closed or message_id in self._requested:
            return None
        existing = self._observed.get(message_id)
        if existing is not None:
            return existing
        message = self._log.find_by_id(message_id)
        if message is None or not self.eligible(message):
            return None
        handle = ObservationHandle(self, message_id)
        self._observed[message_id] = handle
        return handle

    async def report_visibility(self, message_id: str, ratio: float) -> bool:
        """Report the visible fraction of a registered message.

        Returns True when a mark-read request was issued and acknowledged.
        """
        handle = self._observed.get(message_id)
        if handle is None or ratio < self._threshold:
            return False
        message = self._log.find_by_id(message_id)
        if message is None or not self.eligible(message):
            handle.release()
            return False

        # Stop observing before suspending so a second report can't double-fire.
        self._requested.add(message_id)
        handle.release()
        try:
            await self._mark_read(message_id)
        except ReadMarkFailure as e:
            self._requested.discard(message_id)
            logger.error(f"Error marking message as read: {e}")
            return False
        return True

    async def catch_up(self) -> None:
        """Mark every unread message from the other participants as read, once per session."""
        if self._caught_up:
            return
        self._caught_up = True
        for sender in self._registry.others(self._participant):
            try:
                await self._store.update_where({"status": "read"}, sender=sender, status_in=UNREAD_STATUSES)
            except Exception as e:
                logger.error(f"Error updating messages from {sender} to read status: {e}")

    def open(self) -> None:
        """Start a new session: allow registration and one more catch-up sweep."""
        self._closed = False
        self._caught_up = False

    def shutdown(self) -> None:
        self._closed = True
        for handle in list(self._observed.values()):
            handle.release()

    async def _mark_read(self, message_id: str) -> None:
        try:
            await self._store.update_row(message_id, {"status": "read"})
        except Exception as e:
            raise ReadMarkFailure(str(e), details={"id": message_id}) from e

    def _prune_requested(self, snapshot: list[Message]) -> None:
        if not self._requested:
            return
        read = {m.id for m in snapshot if m.status == "read"}
        self._requested -= read

    def _unregister(self, handle: ObservationHandle) -> None:
        if self._observed.get(handle.message_id) is handle:
            del self._observed[handle.message_id]
