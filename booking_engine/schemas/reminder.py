from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from booking_engine.schemas.common import UtcDatetime


ReminderKind = Literal["24h", "2h", "30m"]
ReminderStatus = Literal["pending", "sent", "failed", "cancelled"]


class BookingReminder(BaseModel):
    id: str
    booking_id: str
    kind: ReminderKind
    scheduled_for: UtcDatetime
    status: ReminderStatus = "pending"
    attempts: int = 0
    last_attempt_at: Optional[UtcDatetime] = None
    last_error: Optional[str] = None
    created_at: UtcDatetime
    updated_at: Optional[UtcDatetime] = None


class ReminderSweepResult(BaseModel):
    processed: int = 0
    sent: int = 0
    failed: int = 0
    retried: int = 0
    cancelled: int = 0
    errors: List[str] = Field(default_factory=list)
