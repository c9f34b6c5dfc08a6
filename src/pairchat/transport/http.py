"""
REST adapter — message rows over PostgREST, attachments over object storage.
"""

from typing import Any, Iterable, Optional
from urllib.parse import quote

import httpx

from pairchat.errors import PairChatError
from pairchat.transport.base import BlobStore, MessageStore

USER_AGENT = "pairchat/0.1.0"


class RestStore(MessageStore, BlobStore):
    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        table: str = "messages",
        bucket: str = "chat-uploads",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._table = table
        self._bucket = bucket
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
            timeout=30.0,
            transport=transport,
        )

    def set_api_key(self, api_key: str) -> None:
        self._api_key = api_key

    def _headers(self, **extra: str) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            headers["apikey"] = self._api_key
            headers["Authorization"] = f"Bearer {self._api_key}"
        headers.update(extra)
        return headers

    @staticmethod
    def _check(resp: httpx.Response) -> None:
        if resp.status_code >= 400:
            raise PairChatError("http_error", f"HTTP {resp.status_code}: {resp.text[:200]}")

    @property
    def _rows_path(self) -> str:
        return f"/rest/v1/{self._table}"

    async def select_rows(self) -> list[dict[str, Any]]:
        resp = await self._client.get(
            self._rows_path,
            params={"select": "*", "order": "timestamp.asc"},
            headers=self._headers(),
        )
        self._check(resp)
        return resp.json()

    async def insert_row(self, row: dict[str, Any]) -> dict[str, Any]:
        resp = await self._client.post(
            self._rows_path,
            json=[row],
            headers=self._headers(Prefer="return=representation"),
        )
        self._check(resp)
        data = resp.json()
        # PostgREST returns the inserted rows as a list
        if isinstance(data, list):
            if not data:
                raise PairChatError("http_error", "Insert returned no rows")
            return data[0]
        return data

    async def update_row(self, row_id: str, fields: dict[str, Any]) -> None:
        resp = await self._client.patch(
            self._rows_path,
            params={"id": f"eq.{row_id}"},
            json=fields,
            headers=self._headers(),
        )
        self._check(resp)

    async def update_where(
        self,
        fields: dict[str, Any],
        *,
        sender: str,
        status_in: Optional[Iterable[str]] = None,
    ) -> None:
        params = {"sender": f"eq.{sender}"}
        if status_in is not None:
            params["status"] = f"in.({','.join(status_in)})"
        resp = await self._client.patch(self._rows_path, params=params, json=fields, headers=self._headers())
        self._check(resp)

    def public_url(self, path: str) -> str:
        return f"{self._base_url}/storage/v1/object/public/{self._bucket}/{quote(path)}"

    async def upload(self, path: str, data: bytes, content_type: Optional[str] = None) -> Optional[str]:
        headers = self._headers(**{
            "Content-Type": content_type or "application/octet-stream",
            "Cache-Control": "max-age=3600",
            "x-upsert": "false",
        })
        resp = await self._client.post(
            f"/storage/v1/object/{self._bucket}/{quote(path)}",
            content=data,
            headers=headers,
        )
        self._check(resp)
        return self.public_url(path)

    async def close(self) -> None:
        await self._client.aclose()
