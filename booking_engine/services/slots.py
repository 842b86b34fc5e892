from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import List, Set
from zoneinfo import ZoneInfo

from booking_engine.schemas.booking import SlotView
from booking_engine.schemas.catalog import Service
from booking_engine.schemas.common import parse_instant
from booking_engine.services.catalog import ServiceCatalog
from booking_engine.services.clock import Clock
from booking_engine.services.record_store import BOOKINGS, SLOT_LOCKS, RecordStore

logger = logging.getLogger(__name__)


def candidate_slots(service: Service, start_date: date, end_date: date) -> List[datetime]:
    """Theoretical start instants for ``service`` between two dates, inclusive.

    Windows are walked in the service's local wall-clock time, so a rule of
    09:00-17:00 keeps meaning 09:00-17:00 across daylight-saving changes.
    A wall time that falls in a spring-forward gap rolls forward to the real
    local time after the transition; each instant is emitted once.
    Returned instants are UTC and ordered.
    """

    zone = ZoneInfo(service.timezone)
    step = timedelta(minutes=service.duration_minutes + service.buffer_minutes)
    slots: List[datetime] = []
    seen: Set[datetime] = set()
    day = start_date
    while day <= end_date:
        window = service.window_for(day)
        if window is not None:
            current = datetime.combine(day, window.start_time, tzinfo=zone)
            window_end = datetime.combine(day, window.end_time, tzinfo=zone)
            while current < window_end:
                instant = current.astimezone(timezone.utc)
                if instant not in seen and instant.astimezone(zone) < window_end:
                    seen.add(instant)
                    slots.append(instant)
                current = current + step
        day += timedelta(days=1)
    return slots


def local_day_bounds(service: Service, start_date: date, end_date: date) -> tuple[datetime, datetime]:
    zone = ZoneInfo(service.timezone)
    start = datetime.combine(start_date, time.min, tzinfo=zone)
    end = datetime.combine(end_date + timedelta(days=1), time.min, tzinfo=zone)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


class SlotGenerator:
    """Read-only availability projection over bookings and slot locks."""

    def __init__(self, store: RecordStore, *, clock: Clock, catalog: ServiceCatalog) -> None:
        self._store = store
        self._clock = clock
        self._catalog = catalog

    async def _resolve(self, service: Service | str) -> Service:
        if isinstance(service, Service):
            return service
        return await self._catalog.get_service(service)

    async def occupied_instants(self, service_id: str, range_start: datetime, range_end: datetime) -> Set[datetime]:
        """Instants held by a live booking or an unexpired active lock.

        One query per collection regardless of how many candidates are checked.
        """

        bookings = await self._store.find_many(
            BOOKINGS,
            {
                "service_id": service_id,
                "appointment_at": {"$gte": range_start, "$lt": range_end},
                "status": {"$ne": "cancelled"},
            },
        )
        locks = await self._store.find_many(
            SLOT_LOCKS,
            {
                "service_id": service_id,
                "slot_at": {"$gte": range_start, "$lt": range_end},
                "status": "active",
                "expires_at": {"$gt": self._clock.now()},
            },
        )
        occupied = {parse_instant(record["appointment_at"]) for record in bookings}
        occupied.update(parse_instant(record["slot_at"]) for record in locks)
        return occupied

    async def generate_slots(self, service: Service | str, start_date: date, end_date: date) -> List[SlotView]:
        resolved = await self._resolve(service)
        candidates = candidate_slots(resolved, start_date, end_date)
        if not candidates:
            return []
        range_start, range_end = local_day_bounds(resolved, start_date, end_date)
        occupied = await self.occupied_instants(resolved.id, range_start, range_end)
        logger.debug(
            "Generated %s slots for service %s (%s occupied)", len(candidates), resolved.id, len(occupied)
        )
        return [SlotView(starts_at=slot, available=slot not in occupied) for slot in candidates]

    async def is_slot_available(self, service: Service | str, instant: datetime) -> bool:
        resolved = await self._resolve(service)
        local_day = instant.astimezone(ZoneInfo(resolved.timezone)).date()
        for slot in await self.generate_slots(resolved, local_day, local_day):
            if slot.starts_at == instant:
                return slot.available
        return False
