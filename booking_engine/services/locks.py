from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import AsyncIterator, Optional

from booking_engine.schemas.booking import SlotLock
from booking_engine.schemas.catalog import Service
from booking_engine.schemas.common import as_utc
from booking_engine.services.catalog import ServiceCatalog
from booking_engine.services.clock import Clock
from booking_engine.services.exceptions import (
    LockAlreadyConverted,
    LockNotConvertible,
    LockNotFound,
    ServiceInactive,
    SlotUnavailable,
)
from booking_engine.services.ids import IdGenerator
from booking_engine.services.keyed_lock import KeyedLock
from booking_engine.services.record_store import BOOKINGS, SLOT_LOCKS, RecordStore

logger = logging.getLogger(__name__)


async def mark_lock(store: RecordStore, lock: SlotLock, status: str, now: datetime) -> SlotLock:
    record = await store.update(SLOT_LOCKS, lock.id, {"status": status, "updated_at": now})
    return SlotLock.model_validate(record)


class SlotClaim:
    """Exclusive access to one (service, slot) pair while the claim is open.

    Obtained through :meth:`LockManager.claim`; every check-then-write on the
    slot happens through this object so no other caller can interleave.
    """

    def __init__(
        self,
        service: Service,
        slot_at: datetime,
        *,
        store: RecordStore,
        clock: Clock,
        ids: IdGenerator,
        default_ttl_minutes: int = 15,
    ) -> None:
        self.service = service
        self.slot_at = slot_at
        self._store = store
        self._clock = clock
        self._ids = ids
        self._default_ttl_minutes = default_ttl_minutes

    async def acquire(self, holder_id: str, ttl_minutes: Optional[int] = None) -> SlotLock:
        if not self.service.is_active:
            raise ServiceInactive(self.service.id)

        now = self._clock.now()
        existing = await self._store.find_many(
            SLOT_LOCKS,
            {"service_id": self.service.id, "slot_at": self.slot_at, "status": "active"},
        )
        for record in existing:
            lock = SlotLock.model_validate(record)
            if lock.is_held(now):
                raise SlotUnavailable(self.service.id, self.slot_at, "locked")
            await mark_lock(self._store, lock, "expired", now)

        booking = await self._store.find_one(
            BOOKINGS,
            {
                "service_id": self.service.id,
                "appointment_at": self.slot_at,
                "status": {"$ne": "cancelled"},
            },
        )
        if booking is not None:
            raise SlotUnavailable(self.service.id, self.slot_at, "booked")

        ttl = ttl_minutes or self._default_ttl_minutes
        lock = SlotLock(
            id=self._ids.new_id("lock"),
            service_id=self.service.id,
            entity_id=self.service.entity_id,
            slot_at=self.slot_at,
            holder_id=holder_id,
            locked_at=now,
            expires_at=now + timedelta(minutes=ttl),
            status="active",
            updated_at=now,
        )
        await self._store.create(SLOT_LOCKS, lock.model_dump())
        logger.info(
            "Locked slot %s of service %s for %s until %s",
            self.slot_at.isoformat(),
            self.service.id,
            holder_id,
            lock.expires_at.isoformat(),
        )
        return lock

    async def load_convertible(self, lock_id: str) -> SlotLock:
        record = await self._store.find_by_id(SLOT_LOCKS, lock_id)
        if record is None:
            raise LockNotFound(lock_id)
        lock = SlotLock.model_validate(record)
        if lock.service_id != self.service.id or lock.slot_at != self.slot_at:
            raise LockNotConvertible(lock_id, "it holds a different slot")
        if lock.status != "active":
            raise LockNotConvertible(lock_id, f"it is {lock.status}")
        if not lock.is_held(self._clock.now()):
            raise LockNotConvertible(lock_id, "it has expired")
        return lock

    async def convert(self, lock: SlotLock, booking_id: str) -> SlotLock:
        record = await self._store.update(
            SLOT_LOCKS,
            lock.id,
            {"status": "converted", "booking_id": booking_id, "updated_at": self._clock.now()},
        )
        logger.info("Converted slot lock %s into booking %s", lock.id, booking_id)
        return SlotLock.model_validate(record)


class LockManager:
    def __init__(
        self,
        store: RecordStore,
        *,
        clock: Clock,
        ids: IdGenerator,
        catalog: ServiceCatalog,
        default_ttl_minutes: int = 15,
    ) -> None:
        self._store = store
        self._clock = clock
        self._ids = ids
        self._catalog = catalog
        self._guards = KeyedLock()
        self.default_ttl_minutes = default_ttl_minutes

    @asynccontextmanager
    async def claim(self, service_id: str, slot_at: datetime) -> AsyncIterator[SlotClaim]:
        slot_at = as_utc(slot_at)
        service = await self._catalog.get_service(service_id)
        async with self._guards.hold((service_id, slot_at)):
            yield SlotClaim(
                service,
                slot_at,
                store=self._store,
                clock=self._clock,
                ids=self._ids,
                default_ttl_minutes=self.default_ttl_minutes,
            )

    async def acquire_lock(
        self,
        service_id: str,
        slot_at: datetime,
        holder_id: str,
        ttl_minutes: Optional[int] = None,
    ) -> SlotLock:
        async with self.claim(service_id, slot_at) as claim:
            return await claim.acquire(holder_id, ttl_minutes)

    async def get_lock(self, lock_id: str) -> SlotLock:
        record = await self._store.find_by_id(SLOT_LOCKS, lock_id)
        if record is None:
            raise LockNotFound(lock_id)
        return SlotLock.model_validate(record)

    async def release_lock(self, lock_id: str) -> SlotLock:
        lock = await self.get_lock(lock_id)
        async with self._guards.hold((lock.service_id, lock.slot_at)):
            lock = await self.get_lock(lock_id)
            if lock.status == "converted":
                raise LockAlreadyConverted(lock.id, lock.booking_id)
            if lock.status != "active":
                return lock
            released = await mark_lock(self._store, lock, "released", self._clock.now())
        logger.info("Released slot lock %s", lock_id)
        return released

    async def expire_lock(self, lock_id: str) -> bool:
        """Mark ``lock_id`` expired if it is still active and past its TTL.

        Runs under the slot's guard and re-reads the lock there, so a release
        or conversion that won the race is left alone.
        """

        lock = await self.get_lock(lock_id)
        async with self._guards.hold((lock.service_id, lock.slot_at)):
            lock = await self.get_lock(lock_id)
            now = self._clock.now()
            if lock.status != "active" or lock.is_held(now):
                return False
            await mark_lock(self._store, lock, "expired", now)
        return True
