"""
pairchat — message synchronization engine for a two-party chat client.

Optimistic sends, change-stream reconciliation, reply previews, read
receipts and local notifications over a REST store + Socket.IO change feed.
"""

from pairchat.client import PairChat, AsyncPairChat
from pairchat.config import ChatConfig, load_config
from pairchat.engine import SyncEngine, RenderedMessage
from pairchat.errors import PairChatError, WriteFailure, UploadFailure, ReadMarkFailure, ConnectionError
from pairchat.models.events import ChangeKind
from pairchat.models.message import ChangeEvent, Message, MessageRow, ProvisionalRef, ConfirmedRef
from pairchat.participants import Participant, ParticipantRegistry
from pairchat.previews import AttachmentFile

__version__ = "0.1.0"
__all__ = [
    "PairChat",
    "AsyncPairChat",
    "ChatConfig",
    "load_config",
    "SyncEngine",
    "RenderedMessage",
    "PairChatError",
    "WriteFailure",
    "UploadFailure",
    "ReadMarkFailure",
    "ConnectionError",
    "ChangeKind",
    "ChangeEvent",
    "Message",
    "MessageRow",
    "ProvisionalRef",
    "ConfirmedRef",
    "Participant",
    "ParticipantRegistry",
    "AttachmentFile",
]
