"""
Change-stream merger — apply remote INSERT/UPDATE events to the log.

Own inserts are echoes of optimistic sends and replace their provisional
entry instead of being appended next to it. Matching is heuristic
(content, attachment kind and reply target); when nothing matches the row
is appended, so an event is never dropped. Two identical messages sent in
quick succession can be matched out of order; both end up confirmed either
way.
"""

import logging
from typing import Optional

from pairchat.log import MessageLog
from pairchat.models.events import ChangeKind
from pairchat.models.message import ChangeEvent, Message, MessageRow
from pairchat.replies import DEFAULT_SNIPPET_LENGTH, preview_of, resolve_replies

logger = logging.getLogger("pairchat.merger")


def _reply_id(message: Message) -> Optional[str]:
    return message.reply_to.id if message.reply_to else None


class ChangeStreamMerger:
    def __init__(self, log: MessageLog, participant: str, snippet_length: int = DEFAULT_SNIPPET_LENGTH):
        self._log = log
        self._participant = participant
        self._snippet_length = snippet_length

    def apply(self, event: ChangeEvent) -> Message:
        """Apply one event and return the stored message."""
        incoming = self._with_reply(Message.from_row(event.row))

        if event.kind == ChangeKind.UPDATE:
            stored = self._log.upsert(incoming)
        elif incoming.sender != self._participant or incoming.ref in self._log:
            # Remote message, or redelivery of one already confirmed.
            stored = self._log.upsert(incoming)
        else:
            stored = self._reconcile(incoming, event.row)

        resolve_replies(self._log, self._snippet_length)
        return self._log.get(stored.ref) or stored

    def apply_rows(self, rows: list[MessageRow]) -> None:
        """Load confirmed rows (history) and resolve replies once."""
        for row in rows:
            incoming = self._with_reply(Message.from_row(row))
            if incoming.sender == self._participant and incoming.ref not in self._log:
                # A send that landed while history was loading.
                self._reconcile(incoming, row)
            else:
                self._log.upsert(incoming)
        resolve_replies(self._log, self._snippet_length)

    def _with_reply(self, incoming: Message) -> Message:
        # Rows carry only the reply id; fill the preview before storing.
        if incoming.reply_to is None:
            return incoming
        target = self._log.find_by_id(incoming.reply_to.id)
        if target is None:
            return incoming
        return incoming.model_copy(update={"reply_to": preview_of(target, self._snippet_length)})

    def _reconcile(self, incoming: Message, row: MessageRow) -> Message:
        match = self._find_provisional(incoming, row)
        if match is None:
            logger.debug(f"No provisional entry for own insert {incoming.id}, appending")
            return self._log.upsert(incoming)

        logger.debug(f"Reconciled {match.id} -> {incoming.id}")
        if match.preview is not None:
            match.preview.release()
        return self._log.replace(match.ref, incoming)

    def _find_provisional(self, incoming: Message, row: MessageRow) -> Optional[Message]:
        reply_id = _reply_id(incoming)
        for candidate in self._log.provisional():
            origin = candidate.ref.origin  # type: ignore[union-attr]
            if candidate.sender != incoming.sender:
                continue
            if candidate.content != incoming.content or _reply_id(candidate) != reply_id:
                continue
            if row.file_url is None:
                if origin == "text":
                    return candidate
            elif origin == "attachment" and candidate.attachment is not None \
                    and candidate.attachment.kind == row.file_type:
                return candidate
        return None
