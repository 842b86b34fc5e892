from __future__ import annotations

import logging
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional

from booking_engine.schemas.booking import (
    Booking,
    BookingCreateRequest,
    CancellationResult,
    RescheduleEvent,
    RescheduleResult,
)
from booking_engine.schemas.catalog import Service
from booking_engine.schemas.common import as_utc
from booking_engine.services.catalog import ServiceCatalog
from booking_engine.services.clock import Clock
from booking_engine.services.exceptions import (
    BookingNotFound,
    InvalidBookingTransition,
    SlotUnavailable,
)
from booking_engine.services.ids import IdGenerator
from booking_engine.services.keyed_lock import KeyedLock
from booking_engine.services.locks import LockManager
from booking_engine.services.record_store import BOOKINGS, RecordStore
from booking_engine.services.reminders import ReminderScheduler
from booking_engine.services.slots import SlotGenerator

logger = logging.getLogger(__name__)

# Currencies whose minor unit is not the cent.
_MINOR_UNITS = {"JPY": 0, "KRW": 0, "VND": 0, "CLP": 0, "ISK": 0, "BHD": 3, "KWD": 3, "OMR": 3, "JOD": 3, "TND": 3}

_HOUR_SECONDS = 3600


def quantize_amount(amount: Decimal, currency: str) -> Decimal:
    exponent = Decimal(1).scaleb(-_MINOR_UNITS.get(currency.upper(), 2))
    return amount.quantize(exponent, rounding=ROUND_HALF_UP)


def compute_refund(total_amount: Decimal, refund_percentage: Decimal, currency: str) -> Decimal:
    return quantize_amount(Decimal(total_amount) * Decimal(refund_percentage) / Decimal(100), currency)


def _format_hours(hours: float) -> str:
    return f"{hours:g}"


class BookingService:
    """Owns booking state: creation from locks, cancellation, rescheduling.

    Every mutation of an existing booking runs inside a critical section keyed
    by the booking id. When a slot mutex is also needed it is taken second.
    """

    def __init__(
        self,
        store: RecordStore,
        *,
        clock: Clock,
        ids: IdGenerator,
        catalog: ServiceCatalog,
        slots: SlotGenerator,
        locks: LockManager,
        reminders: ReminderScheduler,
    ) -> None:
        self._store = store
        self._clock = clock
        self._ids = ids
        self._catalog = catalog
        self._slots = slots
        self._locks = locks
        self._reminders = reminders
        self._guards = KeyedLock()

    async def get_booking(self, booking_id: str) -> Booking:
        record = await self._store.find_by_id(BOOKINGS, booking_id)
        if record is None:
            raise BookingNotFound(booking_id)
        return Booking.model_validate(record)

    async def get_booking_by_reference(self, reference: str) -> Booking:
        record = await self._store.find_one(BOOKINGS, {"reference": reference})
        if record is None:
            raise BookingNotFound(reference)
        return Booking.model_validate(record)

    async def list_patient_bookings(self, patient_id: str) -> List[Booking]:
        records = await self._store.find_many(BOOKINGS, {"patient_id": patient_id})
        bookings = [Booking.model_validate(record) for record in records]
        return sorted(bookings, key=lambda booking: booking.appointment_at)

    async def create_booking(self, request: BookingCreateRequest, lock_id: Optional[str] = None) -> Booking:
        lock_id = lock_id or request.lock_id
        async with self._locks.claim(request.service_id, request.appointment_at) as claim:
            if lock_id:
                lock = await claim.load_convertible(lock_id)
            else:
                lock = await claim.acquire(request.patient_id)

            service = claim.service
            now = self._clock.now()
            currency = request.currency or service.currency
            total = request.total_amount if request.total_amount is not None else service.price
            booking = Booking(
                id=self._ids.new_id("booking"),
                service_id=service.id,
                entity_id=service.entity_id,
                patient_id=request.patient_id,
                appointment_at=claim.slot_at,
                duration_minutes=service.duration_minutes,
                status="confirmed",
                reference=self._ids.reference_code(),
                payment_status=request.payment_status,
                payment_id=request.payment_id,
                total_amount=quantize_amount(Decimal(total), currency),
                currency=currency,
                notes=request.notes,
                created_at=now,
                updated_at=now,
            )
            await self._store.create(BOOKINGS, booking.model_dump())
            await claim.convert(lock, booking.id)

        logger.info(
            "Created booking %s (%s) for patient %s at %s",
            booking.id,
            booking.reference,
            booking.patient_id,
            booking.appointment_at.isoformat(),
        )
        await self._reminders.schedule_reminders(booking.id, booking.appointment_at)
        return booking

    async def cancel_booking(self, booking_id: str, reason: str, actor: str) -> CancellationResult:
        async with self._guards.hold(booking_id):
            booking = await self.get_booking(booking_id)
            self._ensure_transition(booking, "cancelled")
            service = await self._catalog.get_service(booking.service_id)
            policy = service.cancellation_policy

            if self._hours_until(booking.appointment_at) < policy.cutoff_hours:
                return CancellationResult(
                    success=False,
                    reason="cutoff_not_met",
                    cutoff_hours=policy.cutoff_hours,
                    message=(
                        "Cancellation not allowed. Must cancel at least "
                        f"{_format_hours(policy.cutoff_hours)} hours before appointment."
                    ),
                )

            refund_amount = compute_refund(booking.total_amount, policy.refund_percentage, booking.currency)
            now = self._clock.now()
            record = await self._store.update(
                BOOKINGS,
                booking_id,
                {
                    "status": "cancelled",
                    "cancellation_reason": reason,
                    "cancelled_at": now,
                    "cancelled_by": actor,
                    "updated_at": now,
                },
            )
            await self._reminders.cancel_pending(booking_id)

        logger.info("Booking %s cancelled by %s, refund %s %s", booking_id, actor, booking.currency, refund_amount)
        return CancellationResult(
            success=True,
            refund_amount=refund_amount,
            currency=booking.currency,
            message=f"Booking cancelled successfully. Refund amount: {booking.currency} {refund_amount}",
            booking=Booking.model_validate(record),
        )

    async def reschedule_booking(
        self, booking_id: str, new_appointment_at: datetime, reason: str, actor: str
    ) -> RescheduleResult:
        new_appointment_at = as_utc(new_appointment_at)
        async with self._guards.hold(booking_id):
            booking = await self.get_booking(booking_id)
            self._ensure_transition(booking, "rescheduled")
            service = await self._catalog.get_service(booking.service_id)
            policy = service.reschedule_policy

            if self._hours_until(booking.appointment_at) < policy.cutoff_hours:
                return RescheduleResult(
                    success=False,
                    reason="cutoff_not_met",
                    cutoff_hours=policy.cutoff_hours,
                    message=(
                        "Rescheduling not allowed. Must reschedule at least "
                        f"{_format_hours(policy.cutoff_hours)} hours before appointment."
                    ),
                )

            if not await self._slots.is_slot_available(service, new_appointment_at):
                return self._slot_refusal()

            try:
                record = await self._move(booking, service, new_appointment_at, reason, actor)
            except SlotUnavailable:
                return self._slot_refusal()

            await self._reminders.cancel_pending(booking_id)
            await self._reminders.schedule_reminders(booking_id, new_appointment_at)

        fee = quantize_amount(policy.fee_amount, booking.currency)
        logger.info(
            "Booking %s rescheduled by %s from %s to %s",
            booking_id,
            actor,
            booking.appointment_at.isoformat(),
            new_appointment_at.isoformat(),
        )
        return RescheduleResult(
            success=True,
            fee_amount=fee,
            currency=booking.currency,
            message=f"Booking rescheduled successfully. Reschedule fee: {booking.currency} {fee}",
            booking=Booking.model_validate(record),
        )

    async def _move(
        self, booking: Booking, service: Service, new_appointment_at: datetime, reason: str, actor: str
    ) -> dict:
        async with self._locks.claim(service.id, new_appointment_at) as claim:
            lock = await claim.acquire(actor)
            now = self._clock.now()
            history = [event.model_dump() for event in booking.reschedule_history]
            history.append(
                RescheduleEvent(
                    original_at=booking.appointment_at,
                    new_at=new_appointment_at,
                    rescheduled_at=now,
                    reason=reason,
                    rescheduled_by=actor,
                ).model_dump()
            )
            record = await self._store.update(
                BOOKINGS,
                booking.id,
                {
                    "appointment_at": new_appointment_at,
                    "status": "rescheduled",
                    "reschedule_history": history,
                    "updated_at": now,
                },
            )
            await claim.convert(lock, booking.id)
        return record

    async def complete_booking(self, booking_id: str) -> Booking:
        return await self._finish(booking_id, "completed")

    async def mark_no_show(self, booking_id: str) -> Booking:
        return await self._finish(booking_id, "no_show")

    async def record_reminder_sent(self, booking_id: str, reminder_id: str) -> None:
        async with self._guards.hold(booking_id):
            booking = await self.get_booking(booking_id)
            if reminder_id in booking.reminders_sent:
                return
            await self._store.update(
                BOOKINGS,
                booking_id,
                {"reminders_sent": [*booking.reminders_sent, reminder_id], "updated_at": self._clock.now()},
            )

    async def _finish(self, booking_id: str, status: str) -> Booking:
        async with self._guards.hold(booking_id):
            booking = await self.get_booking(booking_id)
            self._ensure_transition(booking, status)
            now = self._clock.now()
            changes = {"status": status, "updated_at": now}
            if status == "completed":
                changes["completed_at"] = now
            record = await self._store.update(BOOKINGS, booking_id, changes)
        logger.info("Booking %s marked %s", booking_id, status)
        return Booking.model_validate(record)

    def _hours_until(self, appointment_at: datetime) -> float:
        return (appointment_at - self._clock.now()).total_seconds() / _HOUR_SECONDS

    @staticmethod
    def _ensure_transition(booking: Booking, target: str) -> None:
        if booking.is_terminal:
            raise InvalidBookingTransition(booking.id, booking.status, target)

    @staticmethod
    def _slot_refusal() -> RescheduleResult:
        return RescheduleResult(
            success=False,
            reason="slot_unavailable",
            message="Selected slot is not available.",
        )
