"""Domain enumerations and state-transition rules."""

import enum


class RideStatus(str, enum.Enum):
    OPEN = "open"
    FULL = "full"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    EXPIRED = "expired"


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class ApprovalStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class JobType(str, enum.Enum):
    EXPIRE_RIDES = "expire_rides"
    COMPLETE_RIDES = "complete_rides"
    REFRESH_RATINGS = "refresh_ratings"


class JobStatus(str, enum.Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


# Rides that still accept bookings and take part in recalculation
BOOKABLE_RIDE_STATUSES = frozenset({RideStatus.OPEN, RideStatus.FULL})
TERMINAL_RIDE_STATUSES = frozenset(
    {RideStatus.CANCELLED, RideStatus.COMPLETED, RideStatus.EXPIRED}
)

# Bookings that consume capacity
CONFIRMED_BOOKING_STATUSES = frozenset(
    {BookingStatus.PAID, BookingStatus.COMPLETED}
)
# Bookings that block a second booking by the same rider
ACTIVE_BOOKING_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.PAID})
TERMINAL_BOOKING_STATUSES = frozenset(
    {BookingStatus.CANCELLED, BookingStatus.COMPLETED, BookingStatus.EXPIRED}
)


# State machine: maps current status -> set of valid next statuses
RIDE_TRANSITIONS: dict[RideStatus, set[RideStatus]] = {
    RideStatus.OPEN: {
        RideStatus.FULL,
        RideStatus.CANCELLED,
        RideStatus.COMPLETED,
        RideStatus.EXPIRED,
    },
    RideStatus.FULL: {
        RideStatus.OPEN,
        RideStatus.CANCELLED,
        RideStatus.COMPLETED,
        RideStatus.EXPIRED,
    },
    RideStatus.CANCELLED: set(),
    RideStatus.COMPLETED: set(),
    RideStatus.EXPIRED: set(),
}

BOOKING_TRANSITIONS: dict[BookingStatus, set[BookingStatus]] = {
    BookingStatus.PENDING: {
        BookingStatus.PAID,
        BookingStatus.CANCELLED,
        BookingStatus.EXPIRED,
    },
    BookingStatus.PAID: {BookingStatus.COMPLETED, BookingStatus.CANCELLED},
    BookingStatus.COMPLETED: set(),
    BookingStatus.CANCELLED: set(),
    BookingStatus.EXPIRED: set(),
}
