from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated

from pydantic import AfterValidator, TypeAdapter


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# Every persisted instant is stored in UTC so equality checks compare instants.
UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]

_instant_adapter = TypeAdapter(UtcDatetime)


def parse_instant(value: datetime | str) -> datetime:
    """Coerce a stored instant (datetime or ISO string) to an aware UTC datetime."""

    return _instant_adapter.validate_python(value)
