from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from booking_engine.schemas.booking import BookingCreateRequest, SlotLock
from booking_engine.schemas.catalog import ServiceUpdateRequest
from booking_engine.services.exceptions import (
    LockAlreadyConverted,
    LockNotFound,
    ServiceInactive,
    ServiceNotFound,
    SlotUnavailable,
)
from booking_engine.services.ids import SequentialIdGenerator
from booking_engine.services.locks import SlotClaim

from conftest import NINE, NOW


def test_acquire_lock_creates_active_claim(engine, service) -> None:
    lock = asyncio.run(engine.locks.acquire_lock(service.id, NINE, "patient-1"))

    assert lock.id == "lock-00001"
    assert lock.status == "active"
    assert lock.entity_id == "clinic-1"
    assert lock.locked_at == NOW
    assert lock.expires_at == NOW + timedelta(minutes=15)


def test_second_acquire_is_rejected_as_locked(engine, service) -> None:
    asyncio.run(engine.locks.acquire_lock(service.id, NINE, "patient-1"))

    with pytest.raises(SlotUnavailable) as excinfo:
        asyncio.run(engine.locks.acquire_lock(service.id, NINE, "patient-2"))

    assert excinfo.value.reason == "locked"


def test_concurrent_acquires_have_one_winner(engine, service, store) -> None:
    async def race():
        return await asyncio.gather(
            *(engine.locks.acquire_lock(service.id, NINE, f"patient-{index}") for index in range(6)),
            return_exceptions=True,
        )

    results = asyncio.run(race())

    winners = [result for result in results if isinstance(result, SlotLock)]
    losers = [result for result in results if isinstance(result, SlotUnavailable)]
    assert len(winners) == 1
    assert len(losers) == 5
    active = asyncio.run(store.find_many("slot_locks", {"status": "active"}))
    assert len(active) == 1


def test_booked_slot_cannot_be_locked(engine, service) -> None:
    asyncio.run(
        engine.bookings.create_booking(
            BookingCreateRequest(service_id=service.id, patient_id="patient-1", appointment_at=NINE)
        )
    )

    with pytest.raises(SlotUnavailable) as excinfo:
        asyncio.run(engine.locks.acquire_lock(service.id, NINE, "patient-2"))

    assert excinfo.value.reason == "booked"


def test_expired_lock_is_superseded(engine, service, clock) -> None:
    first = asyncio.run(engine.locks.acquire_lock(service.id, NINE, "patient-1", ttl_minutes=5))
    clock.advance(minutes=6)

    second = asyncio.run(engine.locks.acquire_lock(service.id, NINE, "patient-2"))

    assert second.status == "active"
    assert asyncio.run(engine.locks.get_lock(first.id)).status == "expired"


def test_release_is_idempotent(engine, service) -> None:
    lock = asyncio.run(engine.locks.acquire_lock(service.id, NINE, "patient-1"))

    released = asyncio.run(engine.locks.release_lock(lock.id))
    again = asyncio.run(engine.locks.release_lock(lock.id))

    assert released.status == "released"
    assert again.status == "released"
    # The slot is free for the next caller.
    assert asyncio.run(engine.locks.acquire_lock(service.id, NINE, "patient-2")).status == "active"


def test_release_of_converted_lock_is_signalled(engine, service) -> None:
    lock = asyncio.run(engine.locks.acquire_lock(service.id, NINE, "patient-1"))
    booking = asyncio.run(
        engine.bookings.create_booking(
            BookingCreateRequest(service_id=service.id, patient_id="patient-1", appointment_at=NINE),
            lock_id=lock.id,
        )
    )

    with pytest.raises(LockAlreadyConverted) as excinfo:
        asyncio.run(engine.locks.release_lock(lock.id))

    assert excinfo.value.booking_id == booking.id


def test_release_unknown_lock(engine) -> None:
    with pytest.raises(LockNotFound):
        asyncio.run(engine.locks.release_lock("lock-missing"))


def test_unknown_and_inactive_services(engine, service) -> None:
    with pytest.raises(ServiceNotFound):
        asyncio.run(engine.locks.acquire_lock("srv-missing", NINE, "patient-1"))

    asyncio.run(engine.catalog.update_service(service.id, ServiceUpdateRequest(is_active=False)))
    with pytest.raises(ServiceInactive):
        asyncio.run(engine.locks.acquire_lock(service.id, NINE, "patient-1"))


def test_slot_claim_works_from_its_collaborators(store, clock, service) -> None:
    claim = SlotClaim(
        service,
        NINE,
        store=store,
        clock=clock,
        ids=SequentialIdGenerator(),
        default_ttl_minutes=20,
    )

    async def scenario():
        lock = await claim.acquire("patient-1")
        loaded = await claim.load_convertible(lock.id)
        return lock, await claim.convert(loaded, "booking-external")

    lock, converted = asyncio.run(scenario())

    assert lock.expires_at == NOW + timedelta(minutes=20)
    assert converted.status == "converted"
    assert converted.booking_id == "booking-external"
