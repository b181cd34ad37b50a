"""
Error taxonomy for the booking engine.

Every error carries the HTTP status it maps to; the API layer registers a
single handler for :class:`BookingEngineError`.
"""

from __future__ import annotations

from typing import Any, Optional


class BookingEngineError(Exception):
    status_code: int = 400
    code: str = "booking_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"success": False, "error": self.code, "detail": self.message}


# ── Validation (client-fixable) ───────────────────────────────────────


class ValidationError(BookingEngineError):
    code = "validation_error"


class InvalidSeatCount(ValidationError):
    code = "invalid_seat_count"


class RideDeparted(ValidationError):
    code = "ride_departed"


# ── State ─────────────────────────────────────────────────────────────


class InvalidRideState(BookingEngineError):
    status_code = 409
    code = "invalid_ride_state"


class InvalidBookingState(BookingEngineError):
    status_code = 409
    code = "invalid_booking_state"


class DuplicateBooking(BookingEngineError):
    status_code = 409
    code = "duplicate_booking"


class JobAlreadyRunning(BookingEngineError):
    status_code = 409
    code = "job_already_running"


# ── Authorization ─────────────────────────────────────────────────────


class Forbidden(BookingEngineError):
    status_code = 403
    code = "forbidden"


class SelfBookingForbidden(Forbidden):
    code = "self_booking_forbidden"

    def __init__(self, message: str = "Driver cannot book their own ride"):
        super().__init__(message)


class Unauthorized(BookingEngineError):
    status_code = 401
    code = "unauthorized"


# ── Not found ─────────────────────────────────────────────────────────


class NotFound(BookingEngineError):
    status_code = 404
    code = "not_found"


# ── Capacity ──────────────────────────────────────────────────────────


class CapacityExceeded(BookingEngineError):
    code = "capacity_exceeded"

    def __init__(
        self,
        available_seats: int,
        requested_seats: int,
        message: Optional[str] = None,
    ):
        self.available_seats = available_seats
        self.requested_seats = requested_seats
        super().__init__(
            message
            or f"Only {available_seats} seat(s) available, "
            f"{requested_seats} requested"
        )

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        body["available_seats"] = self.available_seats
        body["requested_seats"] = self.requested_seats
        return body
