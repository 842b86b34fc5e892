from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone

import httpx
import pytest

from booking_engine.clients.notifications import HttpNotificationClient, StoreNotificationDispatcher
from booking_engine.clients.record_store import RecordStoreClient
from booking_engine.services.exceptions import DownstreamServiceError, RecordNotFound
from booking_engine.services.ids import SequentialIdGenerator
from booking_engine.services.record_store import InMemoryRecordStore, matches

from conftest import NOW


def test_filter_operators() -> None:
    record = {"status": "active", "expires_at": NOW, "attempts": 2}

    assert matches(record, {"status": "active"})
    assert matches(record, {"status": {"$ne": "cancelled"}})
    assert matches(record, {"status": {"$in": ["active", "expired"]}})
    assert matches(record, {"attempts": {"$gte": 2, "$lt": 3}})
    assert not matches(record, {"attempts": {"$gt": 2}})
    assert not matches(record, {"expires_at": {"$lt": NOW}})
    assert not matches(record, {"missing": {"$lte": 5}})
    assert matches(record, {"missing": None})
    assert matches(record, None)


def test_unknown_operator_is_rejected() -> None:
    with pytest.raises(ValueError):
        matches({"status": "active"}, {"status": {"$regex": "act"}})


def test_memory_store_copies_records(store) -> None:
    async def scenario():
        created = await store.create("bookings", {"id": "b1", "tags": ["a"]})
        created["tags"].append("mutated")
        return await store.find_by_id("bookings", "b1")

    assert asyncio.run(scenario())["tags"] == ["a"]


def test_memory_store_errors(store) -> None:
    asyncio.run(store.create("bookings", {"id": "b1"}))

    with pytest.raises(ValueError):
        asyncio.run(store.create("bookings", {"id": "b1"}))
    with pytest.raises(ValueError):
        asyncio.run(store.create("bookings", {"status": "confirmed"}))
    with pytest.raises(RecordNotFound):
        asyncio.run(store.update("bookings", "b2", {"status": "cancelled"}))
    with pytest.raises(RecordNotFound):
        asyncio.run(store.delete("bookings", "b2"))


def test_store_dispatcher_writes_notification_records(store, clock) -> None:
    dispatcher = StoreNotificationDispatcher(store, clock=clock, ids=SequentialIdGenerator())

    delivered = asyncio.run(
        dispatcher.send("booking_reminder", "patient-1", {"title": "Appointment Reminder", "message": "soon"})
    )
    record = asyncio.run(store.find_one("notifications", {"user_id": "patient-1"}))

    assert delivered is True
    assert record["id"] == "notif-00001"
    assert record["type"] == "booking_reminder"
    assert record["title"] == "Appointment Reminder"
    assert record["read"] is False
    assert record["created_at"] == NOW


def _store_client(handler) -> RecordStoreClient:
    return RecordStoreClient(
        "http://records.test/api/",
        token="secret",
        transport=httpx.MockTransport(handler),
    )


def test_client_queries_collections() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"items": [{"id": "lock-1", "status": "active"}]})

    client = _store_client(handler)
    instant = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)

    async def scenario():
        try:
            return await client.find_one("slot_locks", {"slot_at": instant, "status": "active"})
        finally:
            await client.close()

    found = asyncio.run(scenario())

    assert found == {"id": "lock-1", "status": "active"}
    request = seen[0]
    assert request.method == "POST"
    assert request.url.path == "/api/collections/slot_locks/query"
    assert request.headers["Authorization"] == "Bearer secret"
    assert json.loads(request.content) == {
        "filter": {"slot_at": "2026-10-19T09:00:00Z", "status": "active"}
    }


def test_client_maps_missing_records_and_failures() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(404, json={"detail": "not found"})
        if request.method == "PATCH":
            return httpx.Response(404)
        return httpx.Response(500, json={"detail": "boom"})

    client = _store_client(handler)

    async def scenario():
        try:
            assert await client.find_by_id("bookings", "missing") is None
            with pytest.raises(RecordNotFound):
                await client.update("bookings", "missing", {"status": "cancelled"})
            with pytest.raises(DownstreamServiceError) as excinfo:
                await client.create("bookings", {"id": "b1"})
            return excinfo.value
        finally:
            await client.close()

    assert asyncio.run(scenario()).status_code == 500


def test_client_reports_unreachable_store() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = _store_client(handler)

    with pytest.raises(DownstreamServiceError) as excinfo:
        asyncio.run(client.find_many("bookings"))
    assert excinfo.value.status_code is None


def test_notification_client_posts_payload() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        if seen[-1]["recipient"] == "patient-2":
            return httpx.Response(200, json={"accepted": False})
        if seen[-1]["recipient"] == "patient-3":
            return httpx.Response(503)
        return httpx.Response(202, json={"accepted": True})

    client = HttpNotificationClient("http://notify.test", transport=httpx.MockTransport(handler))

    async def scenario():
        try:
            assert await client.send("booking_reminder", "patient-1", {"title": "Appointment Reminder"}) is True
            assert await client.send("booking_reminder", "patient-2", {}) is False
            with pytest.raises(DownstreamServiceError) as excinfo:
                await client.send("booking_reminder", "patient-3", {})
            return excinfo.value
        finally:
            await client.close()

    assert asyncio.run(scenario()).status_code == 503
    assert seen[0] == {
        "kind": "booking_reminder",
        "recipient": "patient-1",
        "payload": {"title": "Appointment Reminder"},
    }
