from typing import List

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from booking_engine.config import Settings, get_settings
from booking_engine.dependencies.services import get_booking_service, get_engine, get_reminder_scheduler
from booking_engine.routes.errors import service_error_to_http
from booking_engine.schemas.booking import (
    Booking,
    BookingCreateRequest,
    CancellationResult,
    CancelRequest,
    RescheduleRequest,
    RescheduleResult,
)
from booking_engine.schemas.reminder import BookingReminder
from booking_engine.services import BookingService, ReminderScheduler
from booking_engine.services.calendar import build_calendar_invite, calendar_filename
from booking_engine.services.engine import BookingEngine
from booking_engine.services.exceptions import ServiceError

router = APIRouter()


@router.post("", response_model=Booking, status_code=201)
async def create_booking(
    req: BookingCreateRequest,
    bookings: BookingService = Depends(get_booking_service),
):
    try:
        return await bookings.create_booking(req)
    except ServiceError as exc:
        raise service_error_to_http(exc) from exc


@router.get("/{booking_id}", response_model=Booking)
async def get_booking(
    booking_id: str,
    bookings: BookingService = Depends(get_booking_service),
):
    try:
        return await bookings.get_booking(booking_id)
    except ServiceError as exc:
        raise service_error_to_http(exc) from exc


@router.post("/{booking_id}/cancel", response_model=CancellationResult)
async def cancel_booking(
    booking_id: str,
    req: CancelRequest,
    bookings: BookingService = Depends(get_booking_service),
):
    try:
        return await bookings.cancel_booking(booking_id, req.reason, req.actor)
    except ServiceError as exc:
        raise service_error_to_http(exc) from exc


@router.post("/{booking_id}/reschedule", response_model=RescheduleResult)
async def reschedule_booking(
    booking_id: str,
    req: RescheduleRequest,
    bookings: BookingService = Depends(get_booking_service),
):
    try:
        return await bookings.reschedule_booking(
            booking_id, req.new_appointment_at, req.reason, req.actor
        )
    except ServiceError as exc:
        raise service_error_to_http(exc) from exc


@router.post("/{booking_id}/complete", response_model=Booking)
async def complete_booking(
    booking_id: str,
    bookings: BookingService = Depends(get_booking_service),
):
    try:
        return await bookings.complete_booking(booking_id)
    except ServiceError as exc:
        raise service_error_to_http(exc) from exc


@router.post("/{booking_id}/no-show", response_model=Booking)
async def mark_no_show(
    booking_id: str,
    bookings: BookingService = Depends(get_booking_service),
):
    try:
        return await bookings.mark_no_show(booking_id)
    except ServiceError as exc:
        raise service_error_to_http(exc) from exc


@router.get("/{booking_id}/reminders", response_model=List[BookingReminder])
async def list_reminders(
    booking_id: str,
    bookings: BookingService = Depends(get_booking_service),
    reminders: ReminderScheduler = Depends(get_reminder_scheduler),
):
    try:
        await bookings.get_booking(booking_id)
        return await reminders.list_reminders(booking_id)
    except ServiceError as exc:
        raise service_error_to_http(exc) from exc


@router.get("/{booking_id}/calendar.ics")
async def download_calendar(
    booking_id: str,
    engine: BookingEngine = Depends(get_engine),
    settings: Settings = Depends(get_settings),
):
    try:
        booking = await engine.bookings.get_booking(booking_id)
        service = await engine.catalog.get_service(booking.service_id)
        entity = await engine.catalog.get_entity(booking.entity_id)
    except ServiceError as exc:
        raise service_error_to_http(exc) from exc

    content = build_calendar_invite(
        booking,
        service,
        entity,
        now=engine.clock.now(),
        prodid=settings.calendar_prodid,
        domain=settings.calendar_domain,
    )
    return Response(
        content=content,
        media_type="text/calendar; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{calendar_filename(booking)}"'},
    )
