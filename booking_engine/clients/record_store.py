from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

import httpx
from pydantic_core import to_jsonable_python

from booking_engine.services.exceptions import DownstreamServiceError, RecordNotFound

logger = logging.getLogger(__name__)


class RecordStoreClient:
    """Async HTTP client for the document store backing the booking engine.

    Collections are addressed as ``/collections/{name}``; queries are posted to
    ``/collections/{name}/query`` with the filter document as the body.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = str(base_url).rstrip("/")
        self._timeout = timeout
        self._headers: Dict[str, str] = {"Content-Type": "application/json", "Accept": "application/json"}
        if token:
            self._headers["Authorization"] = f"Bearer {token}"
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _build_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            headers=self._headers,
            transport=self._transport,
        )

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = self._build_client()
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        path: str,
        *,
        payload: Any = None,
        allow_missing: bool = False,
    ) -> Any:
        client = await self._ensure_client()
        body = to_jsonable_python(payload) if payload is not None else None
        try:
            response = await client.request(method, path, json=body)
            if allow_missing and response.status_code == 404:
                return None
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status == 404:
                raise RecordNotFound(path.rsplit("/", 1)[-1], cause=exc) from exc
            logger.exception("Record store returned error %s for %s %s", status, method, path)
            raise DownstreamServiceError(
                "Record store returned an error response",
                status_code=status,
                cause=exc,
            ) from exc
        except httpx.RequestError as exc:
            logger.exception("Unable to reach record store: %s", exc)
            raise DownstreamServiceError(
                "Unable to reach record store", status_code=None, cause=exc
            ) from exc
        if not response.content:
            return None
        return response.json()

    async def create(self, collection: str, record: Mapping[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", f"/collections/{collection}", payload=dict(record))

    async def find_by_id(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        return await self._request("GET", f"/collections/{collection}/{record_id}", allow_missing=True)

    async def find_many(self, collection: str, filter: Mapping[str, Any] | None = None) -> List[Dict[str, Any]]:
        data = await self._request(
            "POST", f"/collections/{collection}/query", payload={"filter": dict(filter or {})}
        )
        if isinstance(data, dict):
            return list(data.get("items", []))
        return list(data or [])

    async def find_one(self, collection: str, filter: Mapping[str, Any] | None = None) -> Optional[Dict[str, Any]]:
        found = await self.find_many(collection, filter)
        return found[0] if found else None

    async def update(self, collection: str, record_id: str, changes: Mapping[str, Any]) -> Dict[str, Any]:
        return await self._request("PATCH", f"/collections/{collection}/{record_id}", payload=dict(changes))

    async def delete(self, collection: str, record_id: str) -> None:
        await self._request("DELETE", f"/collections/{collection}/{record_id}")
