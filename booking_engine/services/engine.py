from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from booking_engine.clients.notifications import NotificationDispatcher, StoreNotificationDispatcher
from booking_engine.config import Settings
from booking_engine.services.bookings import BookingService
from booking_engine.services.catalog import ServiceCatalog
from booking_engine.services.clock import Clock, SystemClock
from booking_engine.services.ids import IdGenerator, UuidIdGenerator
from booking_engine.services.locks import LockManager
from booking_engine.services.record_store import RecordStore
from booking_engine.services.reminders import ReminderScheduler
from booking_engine.services.slots import SlotGenerator
from booking_engine.services.sweeper import ExpirySweeper


@dataclass
class BookingEngine:
    store: RecordStore
    notifier: NotificationDispatcher
    clock: Clock
    catalog: ServiceCatalog
    slots: SlotGenerator
    locks: LockManager
    reminders: ReminderScheduler
    bookings: BookingService
    sweeper: ExpirySweeper

    async def close(self) -> None:
        await self.notifier.close()
        close_store = getattr(self.store, "close", None)
        if close_store is not None:
            await close_store()


def build_engine(
    store: RecordStore,
    *,
    settings: Settings | None = None,
    notifier: NotificationDispatcher | None = None,
    clock: Clock | None = None,
    ids: IdGenerator | None = None,
) -> BookingEngine:
    """Wire every component around one store, clock and id generator.

    Lock and booking critical sections live on the component instances, so a
    process must share a single engine for mutual exclusion to hold.
    """

    settings = settings or Settings()
    clock = clock or SystemClock()
    ids = ids or UuidIdGenerator()
    notifier = notifier or StoreNotificationDispatcher(store, clock=clock, ids=ids)

    catalog = ServiceCatalog(store, clock=clock, ids=ids, default_timezone=settings.default_timezone)
    slots = SlotGenerator(store, clock=clock, catalog=catalog)
    locks = LockManager(
        store,
        clock=clock,
        ids=ids,
        catalog=catalog,
        default_ttl_minutes=settings.lock_ttl_minutes,
    )
    reminders = ReminderScheduler(
        store,
        clock=clock,
        ids=ids,
        notifier=notifier,
        max_attempts=settings.reminder_max_attempts,
        retry_backoff=timedelta(seconds=settings.reminder_retry_backoff_seconds),
    )
    bookings = BookingService(
        store,
        clock=clock,
        ids=ids,
        catalog=catalog,
        slots=slots,
        locks=locks,
        reminders=reminders,
    )
    reminders.set_sent_hook(bookings.record_reminder_sent)
    sweeper = ExpirySweeper(store, clock=clock, locks=locks)
    return BookingEngine(
        store=store,
        notifier=notifier,
        clock=clock,
        catalog=catalog,
        slots=slots,
        locks=locks,
        reminders=reminders,
        bookings=bookings,
        sweeper=sweeper,
    )
