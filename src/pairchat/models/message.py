"""
Message models — wire rows, canonical log entries and change events.
"""

from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pairchat.previews import LocalPreview

MessageStatus = Literal["sent", "delivered", "read"]
AttachmentKind = Literal["image", "video", "audio", "document"]
ProvisionalOrigin = Literal["text", "attachment"]

STATUS_RANK: dict[str, int] = {"sent": 0, "delivered": 1, "read": 2}

TEXT_PREFIX = "temp-"
ATTACHMENT_PREFIX = "temp-file-"


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ProvisionalRef(BaseModel):
    """Locally generated id for a message not yet confirmed by the store."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["provisional"] = "provisional"
    local_id: str
    origin: ProvisionalOrigin = "text"

    @property
    def key(self) -> str:
        prefix = ATTACHMENT_PREFIX if self.origin == "attachment" else TEXT_PREFIX
        return f"{prefix}{self.local_id}"


class ConfirmedRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["confirmed"] = "confirmed"
    remote_id: str

    @property
    def key(self) -> str:
        return self.remote_id


MessageRef = Annotated[Union[ProvisionalRef, ConfirmedRef], Field(discriminator="kind")]


class Attachment(BaseModel):
    url: str
    kind: AttachmentKind


class ReplyPreview(BaseModel):
    """Denormalized reply-to reference. Blank sender/snippet until resolved."""
    id: str
    sender: str = ""
    snippet: str = ""

    @property
    def resolved(self) -> bool:
        return bool(self.sender)


class MessageRow(BaseModel):
    """Row as stored remotely and delivered on the change stream."""
    id: Optional[str] = None
    sender: str
    message: str = ""
    timestamp: datetime
    status: MessageStatus = "sent"
    file_url: Optional[str] = None
    file_type: Optional[AttachmentKind] = None
    replied_to_message_id: Optional[str] = None

    @field_validator("id", "replied_to_message_id", mode="before")
    @classmethod
    def _stringify_id(cls, v: Any) -> Any:
        if v is None:
            return None
        return str(v)

    @field_validator("timestamp")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return _as_utc(v)

    def insert_payload(self) -> dict[str, Any]:
        """Row body for insert-row: no id, JSON-ready values."""
        return self.model_dump(mode="json", exclude={"id"})


class Message(BaseModel):
    """Canonical in-log message."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    ref: MessageRef
    sender: str
    content: str = ""
    timestamp: datetime
    status: MessageStatus = "sent"
    attachment: Optional[Attachment] = None
    reply_to: Optional[ReplyPreview] = None
    preview: Optional[LocalPreview] = Field(default=None, exclude=True)

    @field_validator("timestamp")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return _as_utc(v)

    @property
    def id(self) -> str:
        return self.ref.key

    @property
    def provisional(self) -> bool:
        return isinstance(self.ref, ProvisionalRef)

    def is_own(self, local: str) -> bool:
        return self.sender == local

    def display_status(self, local: str) -> MessageStatus:
        # A message in the shared log can't read as merely "sent" to its author.
        if self.provisional:
            return "sent"
        if self.is_own(local) and self.status == "sent":
            return "delivered"
        return self.status

    @classmethod
    def from_row(cls, row: MessageRow) -> "Message":
        if row.id is None:
            raise ValueError("confirmed row has no id")
        attachment = None
        if row.file_url and row.file_type:
            attachment = Attachment(url=row.file_url, kind=row.file_type)
        reply_to = None
        if row.replied_to_message_id:
            reply_to = ReplyPreview(id=row.replied_to_message_id)
        return cls(
            ref=ConfirmedRef(remote_id=row.id),
            sender=row.sender,
            content=row.message,
            timestamp=row.timestamp,
            status=row.status,
            attachment=attachment,
            reply_to=reply_to,
        )


class ChangeEvent(BaseModel):
    """One change-stream event."""
    kind: Literal["INSERT", "UPDATE"]
    row: MessageRow
