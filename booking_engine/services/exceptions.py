from __future__ import annotations

from datetime import datetime


class ServiceError(Exception):
    """Base exception for service layer failures."""

    def __init__(self, message: str, *, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause


class DownstreamServiceError(ServiceError):
    """Raised when an external collaborator returns an error or is unreachable."""

    def __init__(self, message: str, status_code: int | None = None, *, cause: Exception | None = None):
        super().__init__(message, cause=cause)
        self.status_code = status_code


class NotFoundError(ServiceError):
    """A referenced record does not exist."""

    kind = "Record"

    def __init__(self, record_id: str, *, cause: Exception | None = None):
        super().__init__(f"{self.kind} '{record_id}' not found", cause=cause)
        self.record_id = record_id


class RecordNotFound(NotFoundError):
    kind = "Record"


class ServiceNotFound(NotFoundError):
    kind = "Service"


class BookingNotFound(NotFoundError):
    kind = "Booking"


class LockNotFound(NotFoundError):
    kind = "Slot lock"


class ReminderNotFound(NotFoundError):
    kind = "Reminder"


class SlotUnavailable(ServiceError):
    """Another active lock or a live booking already holds the slot."""

    def __init__(self, service_id: str, slot_at: datetime, reason: str):
        super().__init__(f"Slot {slot_at.isoformat()} for service '{service_id}' is {reason}")
        self.service_id = service_id
        self.slot_at = slot_at
        self.reason = reason


class ServiceInactive(ServiceError):
    def __init__(self, service_id: str):
        super().__init__(f"Service '{service_id}' is not accepting bookings")
        self.service_id = service_id


class LockAlreadyConverted(ServiceError):
    """The lock already backs a booking and can no longer be released."""

    def __init__(self, lock_id: str, booking_id: str | None):
        super().__init__(f"Slot lock '{lock_id}' was already converted to booking '{booking_id}'")
        self.lock_id = lock_id
        self.booking_id = booking_id


class LockNotConvertible(ServiceError):
    def __init__(self, lock_id: str, reason: str):
        super().__init__(f"Slot lock '{lock_id}' cannot be converted: {reason}")
        self.lock_id = lock_id
        self.reason = reason


class InvalidBookingTransition(ServiceError):
    def __init__(self, booking_id: str, current: str, target: str):
        super().__init__(f"Booking '{booking_id}' cannot move from '{current}' to '{target}'")
        self.booking_id = booking_id
        self.current = current
        self.target = target
