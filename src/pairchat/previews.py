"""
Local attachment previews.

A provisional attachment message shows its file through a temporary local
URL until the upload completes. The URL is owned by the provisional
message and must be released exactly once: on reconciliation or on
rollback.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Callable, Optional, Protocol
from urllib.parse import unquote, urlparse

from pydantic import BaseModel

logger = logging.getLogger("pairchat.previews")


class AttachmentFile(BaseModel):
    """A file picked by the user for sending."""
    name: str
    data: bytes
    content_type: Optional[str] = None


class PreviewFactory(Protocol):
    def create(self, file: AttachmentFile) -> str: ...

    def revoke(self, url: str) -> None: ...


class LocalPreview:
    __slots__ = ("url", "_revoke", "_released")

    def __init__(self, url: str, revoke: Callable[[str], None]):
        self.url = url
        self._revoke = revoke
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        if self._released:
            logger.warning(f"Preview {self.url} already released")
            return
        self._released = True
        try:
            self._revoke(self.url)
        except OSError as e:
            logger.error(f"Failed to revoke preview {self.url}: {e}")

    def __repr__(self) -> str:
        return f"LocalPreview(url={self.url!r}, released={self._released})"


class TempFilePreviews:
    """Writes previews to temp files, deletes them on revoke."""

    def __init__(self, directory: Optional[str] = None):
        self._directory = directory

    def create(self, file: AttachmentFile) -> str:
        suffix = Path(file.name).suffix
        fd, path = tempfile.mkstemp(prefix="pairchat-", suffix=suffix, dir=self._directory)
        with os.fdopen(fd, "wb") as handle:
            handle.write(file.data)
        return Path(path).as_uri()

    def revoke(self, url: str) -> None:
        if not url.startswith("file://"):
            return
        Path(unquote(urlparse(url).path)).unlink(missing_ok=True)


def open_preview(factory: PreviewFactory, file: AttachmentFile) -> LocalPreview:
    return LocalPreview(factory.create(file), factory.revoke)
