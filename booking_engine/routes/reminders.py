from fastapi import APIRouter, Depends

from booking_engine.dependencies.services import get_reminder_scheduler
from booking_engine.routes.errors import service_error_to_http
from booking_engine.schemas.reminder import BookingReminder
from booking_engine.services import ReminderScheduler
from booking_engine.services.exceptions import ServiceError

router = APIRouter()


@router.post("/{reminder_id}/retry", response_model=BookingReminder)
async def retry_reminder(
    reminder_id: str,
    reminders: ReminderScheduler = Depends(get_reminder_scheduler),
):
    try:
        return await reminders.retry_reminder(reminder_id)
    except ServiceError as exc:
        raise service_error_to_http(exc) from exc
