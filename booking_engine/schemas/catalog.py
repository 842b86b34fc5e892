from __future__ import annotations

from datetime import date, time
from decimal import Decimal
from typing import List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator, model_validator

from booking_engine.schemas.common import UtcDatetime


class AvailabilityWindow(BaseModel):
    day_of_week: int = Field(..., ge=0, le=6, description="0 = Sunday ... 6 = Saturday")
    start_time: time
    end_time: time

    @model_validator(mode="after")
    def _check_order(self) -> "AvailabilityWindow":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class CancellationPolicy(BaseModel):
    cutoff_hours: float = Field(default=24, ge=0)
    refund_percentage: Decimal = Field(default=Decimal("100"), ge=0, le=100)


class ReschedulePolicy(BaseModel):
    cutoff_hours: float = Field(default=24, ge=0)
    fee_amount: Decimal = Field(default=Decimal("0"), ge=0)


class ServiceCreateRequest(BaseModel):
    entity_id: str
    name: str
    description: str = ""
    duration_minutes: int = Field(..., gt=0)
    buffer_minutes: int = Field(default=0, ge=0)
    price: Decimal = Field(default=Decimal("0"), ge=0)
    currency: str = "USD"
    availability: List[AvailabilityWindow] = Field(default_factory=list)
    timezone: Optional[str] = None
    advance_booking_days: int = Field(default=30, ge=0)
    cancellation_policy: CancellationPolicy = Field(default_factory=CancellationPolicy)
    reschedule_policy: ReschedulePolicy = Field(default_factory=ReschedulePolicy)
    max_bookings_per_day: Optional[int] = Field(default=None, ge=1)
    is_active: bool = True

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone '{value}'") from exc
        return value


class Service(ServiceCreateRequest):
    id: str
    timezone: str = "UTC"
    created_at: UtcDatetime
    updated_at: UtcDatetime

    def window_for(self, day: date) -> Optional[AvailabilityWindow]:
        """Return the first availability rule for ``day``'s weekday."""

        day_of_week = (day.weekday() + 1) % 7
        for window in self.availability:
            if window.day_of_week == day_of_week:
                return window
        return None


class ServiceUpdateRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    duration_minutes: Optional[int] = Field(default=None, gt=0)
    buffer_minutes: Optional[int] = Field(default=None, ge=0)
    price: Optional[Decimal] = Field(default=None, ge=0)
    currency: Optional[str] = None
    availability: Optional[List[AvailabilityWindow]] = None
    timezone: Optional[str] = None
    advance_booking_days: Optional[int] = Field(default=None, ge=0)
    cancellation_policy: Optional[CancellationPolicy] = None
    reschedule_policy: Optional[ReschedulePolicy] = None
    max_bookings_per_day: Optional[int] = Field(default=None, ge=1)
    is_active: Optional[bool] = None


class Entity(BaseModel):
    id: str
    name: str
    address: Optional[str] = None
