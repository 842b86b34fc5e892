"""iCalendar (RFC 5545) invites for bookings."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import List

from booking_engine.schemas.booking import Booking
from booking_engine.schemas.catalog import Entity, Service

CRLF = "\r\n"
_MAX_OCTETS = 75


def format_utc(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def escape_text(value: str) -> str:
    return (
        value.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\r\n", "\\n")
        .replace("\n", "\\n")
    )


def fold_line(line: str) -> str:
    """Split a content line into 75-octet chunks joined by CRLF + space."""

    if len(line.encode("utf-8")) <= _MAX_OCTETS:
        return line
    chunks: List[str] = []
    current = ""
    limit = _MAX_OCTETS
    for char in line:
        if len((current + char).encode("utf-8")) > limit:
            chunks.append(current)
            current = char
            limit = _MAX_OCTETS - 1  # continuation lines start with a space
        else:
            current += char
    chunks.append(current)
    return (CRLF + " ").join(chunks)


def build_calendar_invite(
    booking: Booking,
    service: Service,
    entity: Entity,
    *,
    now: datetime,
    prodid: str = "-//CareConnect//Booking System//EN",
    domain: str = "careconnect.com",
) -> str:
    start = booking.appointment_at
    end = start + timedelta(minutes=booking.duration_minutes)
    description = (
        f"Appointment for {service.name}\n"
        f"Booking Reference: {booking.reference}\n"
        f"Provider: {entity.name}\n"
        f"Amount: {booking.currency} {booking.total_amount}"
    )
    status = "CANCELLED" if booking.status == "cancelled" else "CONFIRMED"
    method = "CANCEL" if booking.status == "cancelled" else "REQUEST"
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{prodid}",
        "CALSCALE:GREGORIAN",
        f"METHOD:{method}",
        "BEGIN:VEVENT",
        f"UID:{booking.id}@{domain}",
        f"DTSTART:{format_utc(start)}",
        f"DTEND:{format_utc(end)}",
        f"DTSTAMP:{format_utc(now)}",
        f"SUMMARY:{escape_text(f'{service.name} - {entity.name}')}",
        f"DESCRIPTION:{escape_text(description)}",
        f"LOCATION:{escape_text(entity.address or 'Online')}",
        f"STATUS:{status}",
        f"SEQUENCE:{len(booking.reschedule_history)}",
        "TRANSP:OPAQUE",
        "END:VEVENT",
        "END:VCALENDAR",
    ]
    return CRLF.join(fold_line(line) for line in lines) + CRLF


def calendar_filename(booking: Booking) -> str:
    return f"appointment-{booking.reference}.ics"
