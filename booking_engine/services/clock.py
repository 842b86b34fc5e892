from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FrozenClock:
    """Clock pinned to an instant; moves only when advanced."""

    def __init__(self, instant: datetime) -> None:
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        self._instant = instant.astimezone(timezone.utc)

    def now(self) -> datetime:
        return self._instant

    def advance(self, delta: timedelta | None = None, **kwargs: float) -> datetime:
        self._instant += delta if delta is not None else timedelta(**kwargs)
        return self._instant

    def set(self, instant: datetime) -> None:
        self._instant = instant.astimezone(timezone.utc)
