from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, List, Optional

from booking_engine.clients.notifications import NotificationDispatcher
from booking_engine.schemas.booking import Booking
from booking_engine.schemas.common import as_utc
from booking_engine.schemas.reminder import BookingReminder, ReminderSweepResult
from booking_engine.services.clock import Clock
from booking_engine.services.exceptions import ReminderNotFound, ServiceError
from booking_engine.services.ids import IdGenerator
from booking_engine.services.record_store import BOOKINGS, REMINDERS, RecordStore

logger = logging.getLogger(__name__)

REMINDER_OFFSETS: Dict[str, timedelta] = {
    "24h": timedelta(hours=24),
    "2h": timedelta(hours=2),
    "30m": timedelta(minutes=30),
}

_KIND_LABELS = {"24h": "24 hours", "2h": "2 hours", "30m": "30 minutes"}

ReminderSentHook = Callable[[str, str], Awaitable[None]]


class ReminderScheduler:
    """Creates the fixed reminder set per booking and dispatches due reminders.

    ``max_attempts`` of 1 keeps a failed dispatch failed for good; higher values
    put it back to ``pending`` with exponential backoff until attempts run out.
    """

    def __init__(
        self,
        store: RecordStore,
        *,
        clock: Clock,
        ids: IdGenerator,
        notifier: NotificationDispatcher,
        max_attempts: int = 1,
        retry_backoff: timedelta = timedelta(minutes=5),
        on_sent: Optional[ReminderSentHook] = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self._ids = ids
        self._notifier = notifier
        self._max_attempts = max(1, max_attempts)
        self._retry_backoff = retry_backoff
        self._on_sent = on_sent

    def set_sent_hook(self, hook: ReminderSentHook) -> None:
        self._on_sent = hook

    async def schedule_reminders(self, booking_id: str, appointment_at: datetime) -> List[BookingReminder]:
        appointment_at = as_utc(appointment_at)
        now = self._clock.now()
        reminders: List[BookingReminder] = []
        for kind, offset in REMINDER_OFFSETS.items():
            reminder = BookingReminder(
                id=self._ids.new_id("rem"),
                booking_id=booking_id,
                kind=kind,
                scheduled_for=appointment_at - offset,
                status="pending",
                attempts=0,
                created_at=now,
                updated_at=now,
            )
            await self._store.create(REMINDERS, reminder.model_dump())
            reminders.append(reminder)
        logger.info("Scheduled %s reminders for booking %s", len(reminders), booking_id)
        return reminders

    async def list_reminders(self, booking_id: str) -> List[BookingReminder]:
        records = await self._store.find_many(REMINDERS, {"booking_id": booking_id})
        reminders = [BookingReminder.model_validate(record) for record in records]
        return sorted(reminders, key=lambda reminder: reminder.scheduled_for)

    async def cancel_pending(self, booking_id: str) -> int:
        pending = await self._store.find_many(REMINDERS, {"booking_id": booking_id, "status": "pending"})
        now = self._clock.now()
        for record in pending:
            await self._store.update(REMINDERS, record["id"], {"status": "cancelled", "updated_at": now})
        if pending:
            logger.info("Cancelled %s pending reminders for booking %s", len(pending), booking_id)
        return len(pending)

    async def retry_reminder(self, reminder_id: str) -> BookingReminder:
        record = await self._store.find_by_id(REMINDERS, reminder_id)
        if record is None:
            raise ReminderNotFound(reminder_id)
        reminder = BookingReminder.model_validate(record)
        if reminder.status != "failed":
            raise ServiceError(f"Reminder '{reminder_id}' is {reminder.status}; only failed reminders can be retried")
        now = self._clock.now()
        updated = await self._store.update(
            REMINDERS,
            reminder_id,
            {"status": "pending", "scheduled_for": now, "last_error": None, "updated_at": now},
        )
        logger.info("Re-queued failed reminder %s", reminder_id)
        return BookingReminder.model_validate(updated)

    async def process_due_reminders(self) -> ReminderSweepResult:
        now = self._clock.now()
        due = await self._store.find_many(
            REMINDERS, {"status": "pending", "scheduled_for": {"$lte": now}}
        )
        result = ReminderSweepResult()
        for record in due:
            result.processed += 1
            try:
                await self._process_one(BookingReminder.model_validate(record), result)
            except Exception as exc:
                logger.exception("Failed to process reminder %s", record.get("id"))
                result.errors.append(f"{record.get('id')}: {exc}")
        if result.processed:
            logger.info(
                "Reminder sweep processed=%s sent=%s failed=%s retried=%s cancelled=%s",
                result.processed,
                result.sent,
                result.failed,
                result.retried,
                result.cancelled,
            )
        return result

    async def _process_one(self, reminder: BookingReminder, result: ReminderSweepResult) -> None:
        booking_record = await self._store.find_by_id(BOOKINGS, reminder.booking_id)
        if booking_record is None or booking_record.get("status") == "cancelled":
            await self._store.update(
                REMINDERS, reminder.id, {"status": "cancelled", "updated_at": self._clock.now()}
            )
            result.cancelled += 1
            return

        booking = Booking.model_validate(booking_record)
        error: Optional[str] = None
        try:
            delivered = await self._notifier.send(
                "booking_reminder", booking.patient_id, self._payload(booking, reminder)
            )
            if not delivered:
                error = "dispatch refused"
        except Exception as exc:
            logger.warning("Dispatch of reminder %s failed: %s", reminder.id, exc)
            error = str(exc) or exc.__class__.__name__

        now = self._clock.now()
        attempts = reminder.attempts + 1
        changes = {"attempts": attempts, "last_attempt_at": now, "updated_at": now}
        if error is None:
            await self._store.update(REMINDERS, reminder.id, {**changes, "status": "sent", "last_error": None})
            result.sent += 1
            if self._on_sent is not None:
                await self._on_sent(booking.id, reminder.id)
        elif attempts < self._max_attempts:
            retry_at = now + self._retry_backoff * (2 ** (attempts - 1))
            await self._store.update(
                REMINDERS,
                reminder.id,
                {**changes, "status": "pending", "scheduled_for": retry_at, "last_error": error},
            )
            result.retried += 1
        else:
            await self._store.update(REMINDERS, reminder.id, {**changes, "status": "failed", "last_error": error})
            result.failed += 1

    @staticmethod
    def _payload(booking: Booking, reminder: BookingReminder) -> Dict[str, object]:
        return {
            "title": "Appointment Reminder",
            "message": f"You have an upcoming appointment in {_KIND_LABELS[reminder.kind]}",
            "booking_id": booking.id,
            "booking_reference": booking.reference,
            "appointment_at": booking.appointment_at.isoformat(),
            "reminder_id": reminder.id,
            "reminder_type": reminder.kind,
        }
