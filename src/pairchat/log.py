"""
Message Log — the canonical ordered, duplicate-free message collection.

Entries are keyed by MessageRef. Rendering order is timestamp ascending,
ties broken by insertion sequence. Replacing an entry keeps its sequence,
so a confirmed message takes over its provisional counterpart's tie-break
slot while moving to wherever its authoritative timestamp puts it.
"""

import itertools
import logging
from typing import Callable, Iterator, Optional

from pairchat.models.message import STATUS_RANK, ConfirmedRef, Message, MessageRef, ProvisionalRef

logger = logging.getLogger("pairchat.log")

LogListener = Callable[[list[Message]], None]


class _Entry:
    __slots__ = ("seq", "message")

    def __init__(self, seq: int, message: Message):
        self.seq = seq
        self.message = message


class MessageLog:
    def __init__(self) -> None:
        self._entries: dict[MessageRef, _Entry] = {}
        self._seq = itertools.count()
        self._listeners: list[LogListener] = []

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, ref: object) -> bool:
        return ref in self._entries

    def get(self, ref: MessageRef) -> Optional[Message]:
        entry = self._entries.get(ref)
        return entry.message if entry else None

    def find_by_id(self, message_id: str) -> Optional[Message]:
        """Look up by display id (confirmed id or prefixed provisional id)."""
        confirmed = self._entries.get(ConfirmedRef(remote_id=message_id))
        if confirmed:
            return confirmed.message
        for entry in self._entries.values():
            if entry.message.id == message_id:
                return entry.message
        return None

    def upsert(self, message: Message) -> Message:
        """Insert if unseen, else replace in place. Returns the stored message."""
        stored, changed = self._put(message)
        if changed:
            self._notify()
        return stored

    def replace(self, old: MessageRef, message: Message) -> Message:
        """Swap the entry under ``old`` for ``message``, keeping its sequence."""
        entry = self._entries.pop(old, None)
        if entry is None:
            return self.upsert(message)
        if message.ref in self._entries:
            # Target already present; the old entry is simply superseded.
            stored, _ = self._put(message)
        else:
            entry.message = stored = message
            self._entries[message.ref] = entry
        self._notify()
        return stored

    def remove(self, ref: MessageRef) -> Optional[Message]:
        entry = self._entries.pop(ref, None)
        if entry is None:
            return None
        self._notify()
        return entry.message

    def provisional(self) -> Iterator[Message]:
        """Provisional entries in log order."""
        for message in self.snapshot():
            if isinstance(message.ref, ProvisionalRef):
                yield message

    def snapshot(self) -> list[Message]:
        entries = sorted(self._entries.values(), key=lambda e: (e.message.timestamp, e.seq))
        return [e.message for e in entries]

    def add_listener(self, listener: LogListener) -> Callable[[], None]:
        """Add a change listener. Returns a cleanup function."""
        self._listeners.append(listener)
        def remove() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass
        return remove

    def _put(self, message: Message) -> tuple[Message, bool]:
        entry = self._entries.get(message.ref)
        if entry is None:
            self._entries[message.ref] = _Entry(next(self._seq), message)
            return message, True
        message = self._keep_status(entry.message, message)
        if entry.message == message:
            return entry.message, False
        entry.message = message
        return message, True

    @staticmethod
    def _keep_status(existing: Message, incoming: Message) -> Message:
        if STATUS_RANK[incoming.status] < STATUS_RANK[existing.status]:
            logger.debug(
                f"Ignoring backward status {existing.status} -> {incoming.status} for {existing.id}"
            )
            return incoming.model_copy(update={"status": existing.status})
        return incoming

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            listener(snapshot)
