"""
Lifecycle rules for rides and bookings.

Patterns used
-------------
- **State Pattern**: ``transition_ride`` / ``transition_booking`` enforce the
  transition tables in :mod:`src.domain.enums` on any object exposing a
  ``status`` attribute (ORM rows in practice).
- Terminal statuses have no outgoing edges, so no mutation can leave them.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from .enums import (
    BOOKING_TRANSITIONS,
    RIDE_TRANSITIONS,
    BookingStatus,
    RideStatus,
)


class InvalidStateTransition(Exception):
    """Raised when a status change violates the state machine."""

    def __init__(self, current: Any, target: Any):
        self.current = current
        self.target = target
        super().__init__(f"Cannot transition from {current} to {target}")


def transition_ride(ride: Any, new_status: RideStatus) -> None:
    """Move *ride* to *new_status* if the transition is legal, else raise."""
    current = RideStatus(ride.status)
    if current == new_status:
        return
    if new_status not in RIDE_TRANSITIONS.get(current, set()):
        raise InvalidStateTransition(current.value, new_status.value)
    ride.status = new_status


def transition_booking(booking: Any, new_status: BookingStatus) -> None:
    """Move *booking* to *new_status* if the transition is legal, else raise."""
    current = BookingStatus(booking.status)
    if new_status not in BOOKING_TRANSITIONS.get(current, set()):
        raise InvalidStateTransition(current.value, new_status.value)
    booking.status = new_status


# ── Time helpers ──────────────────────────────────────────────────────


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalise to aware UTC; naive values are taken to be UTC already."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
