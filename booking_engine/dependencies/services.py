from __future__ import annotations

from functools import lru_cache

from fastapi import Depends

from booking_engine.clients.notifications import HttpNotificationClient, NotificationDispatcher
from booking_engine.clients.record_store import RecordStoreClient
from booking_engine.config import Settings, get_settings
from booking_engine.scheduler import BackgroundJobs
from booking_engine.services import (
    BookingService,
    LockManager,
    ReminderScheduler,
    ServiceCatalog,
    SlotGenerator,
)
from booking_engine.services.engine import BookingEngine, build_engine
from booking_engine.services.record_store import RecordStore, get_memory_store


def _build_store(settings: Settings) -> RecordStore:
    if settings.use_memory_store:
        return get_memory_store()
    return RecordStoreClient(
        str(settings.record_store_url),
        timeout=settings.record_store_timeout,
        token=settings.record_store_token,
    )


def _build_notifier(settings: Settings) -> NotificationDispatcher | None:
    if settings.notification_url is None:
        return None
    return HttpNotificationClient(
        str(settings.notification_url),
        timeout=settings.notification_timeout,
        token=settings.notification_token,
    )


@lru_cache(maxsize=1)
def get_engine_cached() -> BookingEngine:
    settings = get_settings()
    return build_engine(
        _build_store(settings),
        settings=settings,
        notifier=_build_notifier(settings),
    )


@lru_cache(maxsize=1)
def get_background_jobs_cached() -> BackgroundJobs:
    return BackgroundJobs.from_settings(get_engine_cached(), get_settings())


def reset_engine() -> None:
    get_background_jobs_cached.cache_clear()
    get_engine_cached.cache_clear()


def get_engine(settings: Settings = Depends(get_settings)) -> BookingEngine:
    return get_engine_cached()


def get_catalog(engine: BookingEngine = Depends(get_engine)) -> ServiceCatalog:
    return engine.catalog


def get_slot_generator(engine: BookingEngine = Depends(get_engine)) -> SlotGenerator:
    return engine.slots


def get_lock_manager(engine: BookingEngine = Depends(get_engine)) -> LockManager:
    return engine.locks


def get_booking_service(engine: BookingEngine = Depends(get_engine)) -> BookingService:
    return engine.bookings


def get_reminder_scheduler(engine: BookingEngine = Depends(get_engine)) -> ReminderScheduler:
    return engine.reminders


def get_background_jobs() -> BackgroundJobs:
    return get_background_jobs_cached()
