from __future__ import annotations

from fastapi import HTTPException

from booking_engine.services.exceptions import (
    DownstreamServiceError,
    InvalidBookingTransition,
    LockAlreadyConverted,
    LockNotConvertible,
    NotFoundError,
    ServiceError,
    ServiceInactive,
    SlotUnavailable,
)

STATUS_NOT_FOUND = 404
STATUS_CONFLICT = 409
STATUS_UNPROCESSABLE = 422
STATUS_BAD_GATEWAY = 502

# (exception type, status code). First match wins.
ERROR_RULES: list[tuple[type[ServiceError], int]] = [
    (NotFoundError, STATUS_NOT_FOUND),
    (SlotUnavailable, STATUS_CONFLICT),
    (LockAlreadyConverted, STATUS_CONFLICT),
    (LockNotConvertible, STATUS_CONFLICT),
    (InvalidBookingTransition, STATUS_CONFLICT),
    (ServiceInactive, STATUS_CONFLICT),
    (DownstreamServiceError, STATUS_BAD_GATEWAY),
]


def service_error_to_http(exc: ServiceError) -> HTTPException:
    for error_type, status_code in ERROR_RULES:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=STATUS_UNPROCESSABLE, detail=str(exc))
