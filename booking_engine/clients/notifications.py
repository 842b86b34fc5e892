from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Protocol

import httpx
from pydantic_core import to_jsonable_python

from booking_engine.services.clock import Clock, SystemClock
from booking_engine.services.exceptions import DownstreamServiceError
from booking_engine.services.ids import IdGenerator, UuidIdGenerator
from booking_engine.services.record_store import NOTIFICATIONS, RecordStore

logger = logging.getLogger(__name__)


class NotificationDispatcher(Protocol):
    async def send(self, kind: str, recipient: str, payload: Mapping[str, Any]) -> bool:
        """Hand a notification off for delivery; ``False`` means it was refused."""

    async def close(self) -> None:
        ...


class StoreNotificationDispatcher:
    """Delivers notifications as in-app records in the ``notifications`` collection."""

    def __init__(
        self,
        store: RecordStore,
        *,
        clock: Clock | None = None,
        ids: IdGenerator | None = None,
    ) -> None:
        self._store = store
        self._clock = clock or SystemClock()
        self._ids = ids or UuidIdGenerator()

    async def send(self, kind: str, recipient: str, payload: Mapping[str, Any]) -> bool:
        record = {
            "id": self._ids.new_id("notif"),
            "user_id": recipient,
            "type": kind,
            "title": payload.get("title", kind.replace("_", " ").title()),
            "message": payload.get("message", ""),
            "data": dict(payload),
            "read": False,
            "priority": payload.get("priority", "normal"),
            "created_at": self._clock.now(),
        }
        await self._store.create(NOTIFICATIONS, record)
        return True

    async def close(self) -> None:
        return None


class HttpNotificationClient:
    """Async HTTP client for the outbound notification service."""

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

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def send(self, kind: str, recipient: str, payload: Mapping[str, Any]) -> bool:
        if self._client is None:
            self._client = self._build_client()
        body = {"kind": kind, "recipient": recipient, "payload": to_jsonable_python(dict(payload))}
        try:
            response = await self._client.post("/notifications", json=body)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.warning("Notification service rejected %s for %s: %s", kind, recipient, exc.response.status_code)
            raise DownstreamServiceError(
                "Notification service returned an error response",
                status_code=exc.response.status_code,
                cause=exc,
            ) from exc
        except httpx.RequestError as exc:
            logger.warning("Unable to reach notification service: %s", exc)
            raise DownstreamServiceError(
                "Unable to reach notification service", status_code=None, cause=exc
            ) from exc
        data = response.json() if response.content else {}
        return bool(data.get("accepted", True))
