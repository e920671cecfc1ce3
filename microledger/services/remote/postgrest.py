"""
PostgREST Remote Store

Talks to a PostgREST endpoint (the REST layer Supabase exposes) with
httpx. Every write asks for ``return=representation`` so the response
body carries the rows actually written; a row-level security policy
that refuses a write answers 2xx with an empty list.

Errors are translated at this boundary:
- httpx.RequestError (DNS, refused, timeout) -> RemoteConnectionError
- httpx.HTTPStatusError (4xx/5xx)            -> RemoteRequestError
"""

from typing import Any, Optional

import httpx

from microledger.config import PostgrestSettings
from microledger.models.sync import RemoteCollection
from microledger.services.remote.interface import (
    RemoteConnectionError,
    RemoteRequestError,
    RemoteStoreInterface,
    Row,
)


_RETURN_ROWS = "return=representation"
_UPSERT = "return=representation,resolution=merge-duplicates"


class PostgrestRemoteStore(RemoteStoreInterface):
    """Remote store backed by a PostgREST/Supabase REST endpoint."""

    def __init__(
        self,
        settings: PostgrestSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._settings = settings
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._settings.url,
                headers={
                    "apikey": self._settings.api_key,
                    "Authorization": f"Bearer {self._settings.api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self._settings.timeout_seconds,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        collection: RemoteCollection,
        params: Optional[dict[str, Any]] = None,
        json: Any = None,
        prefer: Optional[str] = None,
    ) -> list[Row]:
        collection = RemoteCollection(collection)
        headers = {"Prefer": prefer} if prefer else None
        try:
            response = await self._get_client().request(
                method,
                f"/{collection.value}",
                params=params,
                json=json,
                headers=headers,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise RemoteRequestError(
                f"{method} {collection.value} failed: {e.response.status_code} {e.response.text}",
                status_code=e.response.status_code,
            )
        except httpx.RequestError as e:
            raise RemoteConnectionError(f"{method} {collection.value} unreachable: {e}")

        if not response.content:
            return []
        body = response.json()
        if isinstance(body, dict):
            return [body]
        return body

    async def select_all(self, collection: RemoteCollection) -> list[Row]:
        return await self._request("GET", collection, params={"select": "*"})

    async def select_range(
        self,
        collection: RemoteCollection,
        start: int,
        end: int,
    ) -> list[Row]:
        return await self._request(
            "GET",
            collection,
            params={
                "select": "*",
                "order": "id.asc",
                "offset": start,
                "limit": end - start + 1,
            },
        )

    async def insert(self, collection: RemoteCollection, rows: list[Row]) -> list[Row]:
        return await self._request("POST", collection, json=rows, prefer=_RETURN_ROWS)

    async def upsert(self, collection: RemoteCollection, rows: list[Row]) -> list[Row]:
        return await self._request(
            "POST",
            collection,
            params={"on_conflict": "id"},
            json=rows,
            prefer=_UPSERT,
        )

    async def update(
        self,
        collection: RemoteCollection,
        record_id: str,
        fields: Row,
    ) -> list[Row]:
        return await self._request(
            "PATCH",
            collection,
            params={"id": f"eq.{record_id}"},
            json=fields,
            prefer=_RETURN_ROWS,
        )

    async def delete(self, collection: RemoteCollection, record_id: str) -> list[Row]:
        return await self._request(
            "DELETE",
            collection,
            params={"id": f"eq.{record_id}"},
        )

    async def delete_where(
        self,
        collection: RemoteCollection,
        column: str,
        value: Any,
    ) -> list[Row]:
        return await self._request(
            "DELETE",
            collection,
            params={column: f"eq.{value}"},
        )

    async def ping(self) -> bool:
        try:
            await self._request(
                "GET",
                RemoteCollection.CUSTOMERS,
                params={"select": "id", "limit": 1},
            )
            return True
        except (RemoteConnectionError, RemoteRequestError):
            return False
