"""Service package public API definitions.

The notification client imports ``booking_engine.services.exceptions`` and the
record store constants while the reminder scheduler imports the notification
client. Importing every service implementation eagerly here would make that a
circular import, so implementations are resolved lazily on first access.
"""

from __future__ import annotations

from importlib import import_module
from typing import TYPE_CHECKING, Any

__all__ = [
    "BookingEngine",
    "BookingService",
    "ExpirySweeper",
    "LockManager",
    "ReminderScheduler",
    "ServiceCatalog",
    "SlotGenerator",
    "build_engine",
]

_SERVICE_MODULES = {
    "BookingEngine": "engine",
    "BookingService": "bookings",
    "ExpirySweeper": "sweeper",
    "LockManager": "locks",
    "ReminderScheduler": "reminders",
    "ServiceCatalog": "catalog",
    "SlotGenerator": "slots",
    "build_engine": "engine",
}


def __getattr__(name: str) -> Any:
    if name not in _SERVICE_MODULES:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

    module = import_module(f".{_SERVICE_MODULES[name]}", __name__)
    attr = getattr(module, name)
    globals()[name] = attr
    return attr


if TYPE_CHECKING:  # pragma: no cover - import for static analysis only
    from .bookings import BookingService as BookingService
    from .catalog import ServiceCatalog as ServiceCatalog
    from .engine import BookingEngine as BookingEngine
    from .engine import build_engine as build_engine
    from .locks import LockManager as LockManager
    from .reminders import ReminderScheduler as ReminderScheduler
    from .slots import SlotGenerator as SlotGenerator
    from .sweeper import ExpirySweeper as ExpirySweeper
