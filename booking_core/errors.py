"""Booking error taxonomy and its HTTP mapping."""
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse


class BookingError(Exception):
    """Base class for errors surfaced to the booking caller."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "booking_error"
    default_message: str = "Booking request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInterval(BookingError):
    code = "invalid_interval"
    default_message = "Start time must be before end time"


class PastStart(BookingError):
    code = "past_start"
    default_message = "Start time must not be in the past"


class RequesterNotFound(BookingError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "requester_not_found"
    default_message = "User not found"


class ResourceNotFound(BookingError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "resource_not_found"
    default_message = "Item not found"


class BookingNotFound(BookingError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "booking_not_found"
    default_message = "Booking not found"


class ResourceUnavailable(BookingError):
    status_code = status.HTTP_409_CONFLICT
    code = "resource_unavailable"
    default_message = "Item is not available"


class IntervalConflict(BookingError):
    status_code = status.HTTP_409_CONFLICT
    code = "interval_conflict"
    default_message = "Item is already booked for these dates"


class PersistenceFailure(BookingError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "persistence_failure"
    default_message = "Booking could not be stored"


class EmissionFailure(Exception):
    """Raised by emitters. Never propagated to the booking caller."""


def booking_error_handler(_: Request, exc: BookingError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "code": exc.code})


def register_error_handlers(app: FastAPI) -> None:
    """Translate the booking error hierarchy into JSON responses."""

    app.add_exception_handler(BookingError, booking_error_handler)
