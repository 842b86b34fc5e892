from __future__ import annotations

import asyncio

from booking_engine.schemas.booking import BookingCreateRequest
from booking_engine.schemas.catalog import Entity
from booking_engine.services.calendar import (
    build_calendar_invite,
    calendar_filename,
    escape_text,
    fold_line,
)

from conftest import NINE, NINE_FORTY, NOW

CLINIC = Entity(id="clinic-1", name="Riverside Clinic", address="12 Main St, Springfield")


def _invite(engine, service, booking, entity=CLINIC) -> str:
    return build_calendar_invite(booking, service, entity, now=NOW)


def _unfold(content: str) -> list:
    return content.replace("\r\n ", "").split("\r\n")


def _book(engine, service):
    return asyncio.run(
        engine.bookings.create_booking(
            BookingCreateRequest(service_id=service.id, patient_id="patient-1", appointment_at=NINE)
        )
    )


def test_invite_describes_the_appointment(engine, service) -> None:
    booking = _book(engine, service)

    content = _invite(engine, service, booking)
    lines = _unfold(content)

    assert content.endswith("\r\n")
    assert lines[0] == "BEGIN:VCALENDAR"
    assert "PRODID:-//CareConnect//Booking System//EN" in lines
    assert "METHOD:REQUEST" in lines
    assert "UID:booking-00001@careconnect.com" in lines
    assert "DTSTART:20261019T090000Z" in lines
    assert "DTEND:20261019T093000Z" in lines
    assert "DTSTAMP:20261016T090000Z" in lines
    assert "SUMMARY:General Consultation - Riverside Clinic" in lines
    assert "LOCATION:12 Main St\\, Springfield" in lines
    assert "STATUS:CONFIRMED" in lines
    assert "SEQUENCE:0" in lines
    description = next(line for line in lines if line.startswith("DESCRIPTION:"))
    assert "Booking Reference: BK00000001" in description
    assert "\\nProvider: Riverside Clinic\\n" in description
    assert "Amount: USD 200.00" in description


def test_physical_lines_stay_within_75_octets(engine, service) -> None:
    booking = _book(engine, service)

    content = _invite(engine, service, booking)

    assert all(len(line.encode("utf-8")) <= 75 for line in content.split("\r\n"))


def test_location_defaults_to_online(engine, service) -> None:
    booking = _book(engine, service)

    lines = _unfold(_invite(engine, service, booking, Entity(id="clinic-1", name="Riverside Clinic")))

    assert "LOCATION:Online" in lines


def test_rescheduled_and_cancelled_bookings(engine, service) -> None:
    booking = _book(engine, service)
    moved = asyncio.run(engine.bookings.reschedule_booking(booking.id, NINE_FORTY, "", "patient-1")).booking

    rescheduled = _unfold(_invite(engine, service, moved))
    assert "DTSTART:20261019T094000Z" in rescheduled
    assert "SEQUENCE:1" in rescheduled

    cancelled = asyncio.run(engine.bookings.cancel_booking(booking.id, "", "patient-1")).booking
    lines = _unfold(_invite(engine, service, cancelled))
    assert "METHOD:CANCEL" in lines
    assert "STATUS:CANCELLED" in lines


def test_text_escaping() -> None:
    assert escape_text("a;b,c\\d\ne") == "a\\;b\\,c\\\\d\\ne"


def test_folding_respects_multibyte_characters() -> None:
    line = "SUMMARY:" + "é" * 80

    folded = fold_line(line)
    parts = folded.split("\r\n")

    assert len(parts) == 3
    assert all(len(part.encode("utf-8")) <= 75 for part in parts)
    assert all(part.startswith(" ") for part in parts[1:])
    assert folded.replace("\r\n ", "") == line
    assert fold_line("SUMMARY:short") == "SUMMARY:short"


def test_filename_uses_reference(engine, service) -> None:
    booking = _book(engine, service)

    assert calendar_filename(booking) == "appointment-BK00000001.ics"
