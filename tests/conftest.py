from __future__ import annotations

import os
import sys
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Set

import asyncio
import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from booking_engine.config import Settings
from booking_engine.schemas.catalog import (
    AvailabilityWindow,
    CancellationPolicy,
    ReschedulePolicy,
    Service,
    ServiceCreateRequest,
)
from booking_engine.services.clock import FrozenClock
from booking_engine.services.engine import BookingEngine, build_engine
from booking_engine.services.exceptions import DownstreamServiceError
from booking_engine.services.ids import SequentialIdGenerator
from booking_engine.services.record_store import InMemoryRecordStore


# Friday; the fixture service opens on Mondays only.
NOW = datetime(2026, 10, 16, 9, 0, tzinfo=timezone.utc)
MONDAY = date(2026, 10, 19)
NINE = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)
NINE_FORTY = datetime(2026, 10, 19, 9, 40, tzinfo=timezone.utc)


class RecordingNotifier:
    """Notification dispatcher stub that records sends and can be told to fail."""

    def __init__(self) -> None:
        self.sent: List[Dict[str, Any]] = []
        self.failing_recipients: Set[str] = set()
        self.refusing_recipients: Set[str] = set()

    async def send(self, kind: str, recipient: str, payload: Mapping[str, Any]) -> bool:
        if recipient in self.failing_recipients:
            raise DownstreamServiceError("Notification service unavailable", status_code=503)
        if recipient in self.refusing_recipients:
            return False
        self.sent.append({"kind": kind, "recipient": recipient, "payload": dict(payload)})
        return True

    async def close(self) -> None:
        return None


def service_request(**overrides: Any) -> ServiceCreateRequest:
    data: Dict[str, Any] = {
        "entity_id": "clinic-1",
        "name": "General Consultation",
        "duration_minutes": 30,
        "buffer_minutes": 10,
        "price": Decimal("200.00"),
        "currency": "USD",
        "availability": [AvailabilityWindow(day_of_week=1, start_time=time(9, 0), end_time=time(10, 10))],
        "timezone": "UTC",
        "cancellation_policy": CancellationPolicy(cutoff_hours=24, refund_percentage=Decimal("50")),
        "reschedule_policy": ReschedulePolicy(cutoff_hours=12, fee_amount=Decimal("25")),
    }
    data.update(overrides)
    return ServiceCreateRequest(**data)


def make_service(**overrides: Any) -> Service:
    request = service_request(**overrides)
    return Service(id="srv-test", created_at=NOW, updated_at=NOW, **request.model_dump())


def make_engine(
    store: InMemoryRecordStore,
    clock: FrozenClock,
    notifier: RecordingNotifier,
    settings: Optional[Settings] = None,
) -> BookingEngine:
    return build_engine(
        store,
        settings=settings or Settings(),
        notifier=notifier,
        clock=clock,
        ids=SequentialIdGenerator(),
    )


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(NOW)


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def engine(store: InMemoryRecordStore, clock: FrozenClock, notifier: RecordingNotifier) -> BookingEngine:
    return make_engine(store, clock, notifier)


@pytest.fixture
def service(engine: BookingEngine) -> Service:
    return asyncio.run(engine.catalog.create_service(service_request()))
