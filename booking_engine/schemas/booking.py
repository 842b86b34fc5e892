from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from booking_engine.schemas.common import UtcDatetime


LockStatus = Literal["active", "expired", "converted", "released"]
BookingStatus = Literal["confirmed", "cancelled", "completed", "no_show", "rescheduled"]
PaymentStatus = Literal["pending", "paid", "refunded", "failed"]
RefusalReason = Literal["cutoff_not_met", "slot_unavailable"]

TERMINAL_BOOKING_STATUSES = frozenset({"cancelled", "completed", "no_show"})


class SlotView(BaseModel):
    starts_at: UtcDatetime
    available: bool


class SlotListResponse(BaseModel):
    service_id: str
    start_date: date
    end_date: date
    slots: List[SlotView]


class SlotLockRequest(BaseModel):
    service_id: str
    slot_at: UtcDatetime
    holder_id: str
    ttl_minutes: Optional[int] = Field(default=None, ge=1)


class SlotLock(BaseModel):
    id: str
    service_id: str
    entity_id: str
    slot_at: UtcDatetime
    holder_id: str
    locked_at: UtcDatetime
    expires_at: UtcDatetime
    booking_id: Optional[str] = None
    status: LockStatus = "active"
    updated_at: Optional[UtcDatetime] = None

    def is_held(self, now: datetime) -> bool:
        """An active lock stops holding its slot once ``expires_at`` passes."""

        return self.status == "active" and self.expires_at > now


class RescheduleEvent(BaseModel):
    original_at: UtcDatetime
    new_at: UtcDatetime
    rescheduled_at: UtcDatetime
    reason: str = ""
    rescheduled_by: Optional[str] = None


class BookingCreateRequest(BaseModel):
    service_id: str
    patient_id: str
    appointment_at: UtcDatetime
    lock_id: Optional[str] = None
    total_amount: Optional[Decimal] = Field(default=None, ge=0)
    currency: Optional[str] = None
    payment_status: PaymentStatus = "pending"
    payment_id: Optional[str] = None
    notes: str = ""


class Booking(BaseModel):
    id: str
    service_id: str
    entity_id: str
    patient_id: str
    appointment_at: UtcDatetime
    duration_minutes: int
    status: BookingStatus = "confirmed"
    reference: str
    payment_status: PaymentStatus = "pending"
    payment_id: Optional[str] = None
    total_amount: Decimal = Decimal("0")
    currency: str = "USD"
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[UtcDatetime] = None
    cancelled_by: Optional[str] = None
    reschedule_history: List[RescheduleEvent] = Field(default_factory=list)
    reminders_sent: List[str] = Field(default_factory=list)
    notes: str = ""
    completed_at: Optional[UtcDatetime] = None
    created_at: UtcDatetime
    updated_at: UtcDatetime

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_BOOKING_STATUSES


class CancelRequest(BaseModel):
    reason: str = ""
    actor: str


class RescheduleRequest(BaseModel):
    new_appointment_at: UtcDatetime
    reason: str = ""
    actor: str


class CancellationResult(BaseModel):
    success: bool
    message: str
    reason: Optional[RefusalReason] = None
    cutoff_hours: Optional[float] = None
    refund_amount: Optional[Decimal] = None
    currency: Optional[str] = None
    booking: Optional[Booking] = None


class RescheduleResult(BaseModel):
    success: bool
    message: str
    reason: Optional[RefusalReason] = None
    cutoff_hours: Optional[float] = None
    fee_amount: Optional[Decimal] = None
    currency: Optional[str] = None
    booking: Optional[Booking] = None
