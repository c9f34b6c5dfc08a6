"""
Remote store abstractions.

The engine only talks to the remote side through these two interfaces.
'RestStore' (transport/http.py) implements both against a PostgREST +
object storage backend; tests plug in in-memory fakes.
"""

from abc import ABC, abstractmethod
from typing import Any, Iterable, Optional


class MessageStore(ABC):
    """Remote write API for message rows."""

    @abstractmethod
    async def select_rows(self) -> list[dict[str, Any]]:
        """All rows, ordered by timestamp ascending."""
        pass

    @abstractmethod
    async def insert_row(self, row: dict[str, Any]) -> dict[str, Any]:
        """Insert a row and return the confirmed row."""
        pass

    @abstractmethod
    async def update_row(self, row_id: str, fields: dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def update_where(
        self,
        fields: dict[str, Any],
        *,
        sender: str,
        status_in: Optional[Iterable[str]] = None,
    ) -> None:
        """Bulk update every row from ``sender`` whose status is in ``status_in``."""
        pass


class BlobStore(ABC):
    """Blob upload API."""

    @abstractmethod
    async def upload(self, path: str, data: bytes, content_type: Optional[str] = None) -> Optional[str]:
        """Upload ``data`` under ``path`` and return its stable public URL."""
        pass
