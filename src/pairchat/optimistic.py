"""
Optimistic write tracker.

A send puts a provisional message into the log before the remote write is
issued. Success does not touch the log: the store's own insert event comes
back over the change stream and the merger reconciles it. Failure removes
exactly that provisional entry again and raises to the caller.
"""

import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Callable, Optional

from pairchat.errors import UploadFailure, WriteFailure
from pairchat.log import MessageLog
from pairchat.models.message import (
    Attachment,
    AttachmentKind,
    Message,
    MessageRow,
    ProvisionalOrigin,
    ProvisionalRef,
    ReplyPreview,
)
from pairchat.previews import AttachmentFile, PreviewFactory, TempFilePreviews, open_preview
from pairchat.replies import DEFAULT_SNIPPET_LENGTH, preview_of, resolve_replies
from pairchat.transport.base import BlobStore, MessageStore

logger = logging.getLogger("pairchat.optimistic")

ATTACHMENT_PLACEHOLDER = "Shared a {kind}."


def attachment_placeholder(kind: str) -> str:
    return ATTACHMENT_PLACEHOLDER.format(kind=kind)


def upload_path(sender: str, filename: str, at: datetime) -> str:
    """Blob path: files live under their sender, prefixed with epoch millis."""
    millis = int(at.timestamp() * 1000)
    name = re.sub(r"\s", "_", filename)
    return f"{sender}/{millis}_{name}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OptimisticWriter:
    def __init__(
        self,
        log: MessageLog,
        store: MessageStore,
        blobs: BlobStore,
        participant: str,
        previews: Optional[PreviewFactory] = None,
        snippet_length: int = DEFAULT_SNIPPET_LENGTH,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._log = log
        self._store = store
        self._blobs = blobs
        self._participant = participant
        self._previews = previews or TempFilePreviews()
        self._snippet_length = snippet_length
        self._clock = clock or _utcnow

    async def send_text(self, content: str, reply_to: Optional[str] = None) -> Optional[Message]:
        """Send a text message. Returns the provisional entry, or None when refused.

        Raises WriteFailure after rolling back if the remote insert fails.
        """
        content = content.strip()
        if not content and reply_to is None:
            return None

        message = self._provisional("text", content, reply_to)
        self._log.upsert(message)
        resolve_replies(self._log, self._snippet_length)
        row = self._row(message)

        try:
            await self._store.insert_row(row.insert_payload())
        except Exception as e:
            self._rollback(message.ref)
            raise WriteFailure(f"Failed to send message: {e}", details={"ref": message.id}) from e
        return message

    async def send_attachment(
        self,
        file: AttachmentFile,
        kind: AttachmentKind,
        reply_to: Optional[str] = None,
    ) -> Message:
        """Upload ``file`` and send it as an attachment message.

        Raises UploadFailure or WriteFailure after rolling back.
        """
        preview = open_preview(self._previews, file)
        try:
            message = self._provisional(
                "attachment",
                attachment_placeholder(kind),
                reply_to,
                attachment=Attachment(url=preview.url, kind=kind),
                preview=preview,
            )
        except ValueError:
            preview.release()
            raise
        self._log.upsert(message)
        resolve_replies(self._log, self._snippet_length)

        path = upload_path(self._participant, file.name, message.timestamp)
        try:
            public_url = await self._blobs.upload(path, file.data, file.content_type)
        except Exception as e:
            self._rollback(message.ref)
            raise UploadFailure(f"Failed to upload {file.name}: {e}", details={"ref": message.id, "path": path}) from e
        if not public_url:
            self._rollback(message.ref)
            raise UploadFailure(f"No public URL for {path}", details={"ref": message.id, "path": path})

        row = self._row(message, file_url=public_url)
        try:
            await self._store.insert_row(row.insert_payload())
        except Exception as e:
            self._rollback(message.ref)
            raise WriteFailure(f"Failed to send attachment message: {e}", details={"ref": message.id}) from e
        return message

    def _provisional(
        self,
        origin: ProvisionalOrigin,
        content: str,
        reply_to: Optional[str],
        attachment: Optional[Attachment] = None,
        preview=None,
    ) -> Message:
        return Message(
            ref=ProvisionalRef(local_id=uuid.uuid4().hex, origin=origin),
            sender=self._participant,
            content=content,
            timestamp=self._clock(),
            attachment=attachment,
            reply_to=self._reply_preview(reply_to),
            preview=preview,
        )

    def _reply_preview(self, reply_to: Optional[str]) -> Optional[ReplyPreview]:
        if reply_to is None:
            return None
        target = self._log.find_by_id(reply_to)
        if target is None:
            return ReplyPreview(id=reply_to)
        if target.provisional:
            raise ValueError(f"Cannot reply to unconfirmed message {reply_to}")
        return preview_of(target, self._snippet_length)

    def _row(self, message: Message, file_url: Optional[str] = None) -> MessageRow:
        return MessageRow(
            sender=message.sender,
            message=message.content,
            timestamp=message.timestamp,
            status="sent",
            file_url=file_url,
            file_type=message.attachment.kind if message.attachment else None,
            replied_to_message_id=message.reply_to.id if message.reply_to else None,
        )

    def _rollback(self, ref: ProvisionalRef) -> None:
        removed = self._log.remove(ref)
        if removed is None:
            # Already reconciled by an echo that beat the failure report.
            logger.warning(f"Rollback of {ref.key}: entry no longer in log")
            return
        if removed.preview is not None:
            removed.preview.release()
        logger.error(f"Rolled back provisional message {ref.key}")
        resolve_replies(self._log, self._snippet_length)
