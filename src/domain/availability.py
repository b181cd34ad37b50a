"""
Availability Rule
=================

Seat availability is *derived*, never maintained incrementally:

    confirmed       = sum(seats_booked for bookings in {paid, completed})
    seats_available = clamp(seats_total - confirmed, 0, seats_total)
    status          = unchanged if terminal
                      FULL  if seats_available == 0
                      OPEN  otherwise

Pending (including approved-but-unpaid) bookings do not reserve seats.
Everything here is pure so it can be unit tested without a database and
called redundantly after every mutation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Protocol

from .enums import (
    BOOKABLE_RIDE_STATUSES,
    CONFIRMED_BOOKING_STATUSES,
    TERMINAL_RIDE_STATUSES,
    BookingStatus,
    RideStatus,
)


class _SeatHolder(Protocol):
    seats_booked: int
    status: BookingStatus


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Availability:
    seats_available: int
    status: RideStatus


@dataclass(frozen=True)
class BookingValidation:
    is_valid: bool
    available_seats: int
    error_message: Optional[str] = None


# ── Rules ─────────────────────────────────────────────────────────────


def confirmed_seats(bookings: Iterable[_SeatHolder]) -> int:
    return sum(
        b.seats_booked
        for b in bookings
        if BookingStatus(b.status) in CONFIRMED_BOOKING_STATUSES
    )


def available_seats(seats_total: int, confirmed: int) -> int:
    return min(seats_total, max(0, seats_total - confirmed))


def compute_availability(
    seats_total: int, current_status: RideStatus, confirmed: int
) -> Availability:
    """Derive ``(seats_available, status)`` from the confirmed seat sum."""
    seats = available_seats(seats_total, confirmed)
    current = RideStatus(current_status)
    if current in TERMINAL_RIDE_STATUSES:
        return Availability(seats, current)
    return Availability(seats, RideStatus.FULL if seats == 0 else RideStatus.OPEN)


def validate_booking_request(
    ride_status: RideStatus,
    seats_total: int,
    confirmed: int,
    seats_requested: int,
) -> BookingValidation:
    """Capacity check shared by create, approve and the dry-run endpoint.

    ``confirmed`` must already exclude the booking being validated when the
    caller is re-validating an existing request.
    """
    seats = available_seats(seats_total, confirmed)
    status = RideStatus(ride_status)
    if status not in BOOKABLE_RIDE_STATUSES:
        return BookingValidation(
            False, seats, f"Ride is {status.value} and cannot accept bookings"
        )
    if seats_requested <= 0:
        return BookingValidation(False, seats, "Valid number of seats required")
    if seats_requested > seats:
        return BookingValidation(
            False,
            seats,
            f"Only {seats} seat(s) available, {seats_requested} requested",
        )
    return BookingValidation(True, seats)
