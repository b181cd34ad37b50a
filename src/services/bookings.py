"""
Booking Lifecycle Manager
=========================

Validates and executes every booking state transition:

    pending/pending  --approve--> pending/approved
    pending/pending  --reject-->  cancelled/rejected
    pending/*        --cancel-->  cancelled/*
    pending/approved --pay-->     paid/approved
    paid/approved    --cancel-->  cancelled/approved

Each operation is one unit of work: lock the ride row, re-read the
confirmed seat sum, mutate, run the availability recalculator, commit.
Notifications are dispatched only after the commit and cannot undo it.

Approval authorises a rider to pay but does not reserve a seat.  The only
point where a seat is consumed is :meth:`BookingLifecycleManager.record_payment`,
which re-checks capacity under the ride row lock.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.domain.availability import BookingValidation, validate_booking_request
from src.domain.entities import (
    InvalidStateTransition,
    as_utc,
    transition_booking,
    utcnow,
)
from src.domain.enums import (
    BOOKABLE_RIDE_STATUSES,
    TERMINAL_BOOKING_STATUSES,
    ApprovalStatus,
    BookingStatus,
    RideStatus,
)
from src.domain.errors import (
    CapacityExceeded,
    DuplicateBooking,
    Forbidden,
    InvalidBookingState,
    InvalidRideState,
    InvalidSeatCount,
    NotFound,
    RideDeparted,
    SelfBookingForbidden,
)
from src.infrastructure.models import BookingModel, RideModel
from src.infrastructure.repositories import (
    BookingRepository,
    RideRepository,
    UserRepository,
)
from src.services.notifications import (
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    dispatch_safely,
)
from src.services.recalculator import AvailabilityRecalculator

logger = logging.getLogger(__name__)


class BookingLifecycleManager:
    def __init__(
        self,
        session: AsyncSession,
        notifier: Optional[NotificationDispatcher] = None,
    ):
        self.session = session
        self.rides = RideRepository(session)
        self.bookings = BookingRepository(session)
        self.users = UserRepository(session)
        self.recalculator = AvailabilityRecalculator(session)
        self.notifier = notifier or LoggingNotificationDispatcher()

    # ── Queries ───────────────────────────────────────────────────

    async def get_booking(self, booking_id: int) -> tuple[BookingModel, RideModel]:
        booking = await self.bookings.get_by_id(booking_id)
        if booking is None:
            raise NotFound("Booking not found")
        ride = await self.rides.get_by_id(booking.ride_id)
        return booking, ride

    async def validate_booking(
        self, ride_id: int, seats_requested: int
    ) -> BookingValidation:
        """Dry-run of the capacity rule used by :meth:`create_booking`."""
        ride = await self.rides.get_by_id(ride_id)
        if ride is None:
            raise NotFound("Ride not found")
        confirmed = await self.bookings.confirmed_seats(ride_id)
        return validate_booking_request(
            RideStatus(ride.status), ride.seats_total, confirmed, seats_requested
        )

    # ── Transitions ───────────────────────────────────────────────

    async def create_booking(
        self,
        ride_id: int,
        rider_id: int,
        seats_requested: int,
        now: Optional[datetime] = None,
    ) -> BookingModel:
        now = now or utcnow()
        if not 1 <= seats_requested <= settings.max_seats_per_booking:
            raise InvalidSeatCount(
                f"Seats must be between 1 and {settings.max_seats_per_booking}"
            )

        if await self.users.get_by_id(rider_id) is None:
            raise NotFound("User not found")

        ride = await self.rides.get_for_update(ride_id)
        if ride is None:
            raise NotFound("Ride not found")
        if RideStatus(ride.status) not in BOOKABLE_RIDE_STATUSES:
            raise InvalidRideState(
                f"Ride is {RideStatus(ride.status).value} and cannot accept bookings"
            )
        if as_utc(ride.departure_time) <= now:
            raise RideDeparted("Ride has already departed")
        if ride.driver_id == rider_id:
            raise SelfBookingForbidden()
        if await self.bookings.get_active_for_rider(ride_id, rider_id):
            raise DuplicateBooking("You already have a booking for this ride")

        await self._ensure_capacity(ride, seats_requested)

        booking = await self.bookings.create_booking(
            ride_id=ride.id,
            rider_id=rider_id,
            seats_booked=seats_requested,
            price_per_seat=ride.price,
            currency=ride.currency,
        )
        await self.recalculator.recompute_ride(ride)
        await self.session.commit()
        logger.info(
            "Booking %d created: ride=%d rider=%d seats=%d",
            booking.id, ride.id, rider_id, seats_requested,
        )

        await dispatch_safely(self.notifier.notify_booking_request, booking.id)
        return booking

    async def approve_booking(
        self, booking_id: int, actor_id: Optional[int] = None
    ) -> BookingModel:
        booking, ride = await self._lock(booking_id)
        self._require_driver(ride, actor_id)

        if (
            BookingStatus(booking.status) != BookingStatus.PENDING
            or ApprovalStatus(booking.approval_status) != ApprovalStatus.PENDING
        ):
            raise InvalidBookingState(
                f"Booking is already {BookingStatus(booking.status).value}"
                f"/{ApprovalStatus(booking.approval_status).value}"
            )
        await self._ensure_capacity(ride, booking.seats_booked, exclude=booking.id)

        booking.approval_status = ApprovalStatus.APPROVED
        booking.approved_at = utcnow()
        await self.recalculator.recompute_ride(ride)
        await self.session.commit()
        logger.info("Booking %d approved", booking.id)

        await dispatch_safely(self.notifier.notify_booking_confirmation, booking.id)
        await dispatch_safely(self.notifier.schedule_ride_reminder, ride.id)
        return booking

    async def reject_booking(
        self, booking_id: int, actor_id: Optional[int] = None
    ) -> BookingModel:
        booking, ride = await self._lock(booking_id)
        self._require_driver(ride, actor_id)

        self._transition(booking, BookingStatus.CANCELLED)
        booking.approval_status = ApprovalStatus.REJECTED
        await self.recalculator.recompute_ride(ride)
        await self.session.commit()
        logger.info("Booking %d rejected", booking.id)

        await dispatch_safely(self.notifier.notify_booking_rejection, booking.id)
        return booking

    async def cancel_booking(
        self, booking_id: int, actor_id: Optional[int] = None
    ) -> BookingModel:
        booking, ride = await self._lock(booking_id)
        if actor_id is not None and actor_id not in (booking.rider_id, ride.driver_id):
            raise Forbidden("Only the rider or the driver can cancel this booking")

        previous = BookingStatus(booking.status)
        self._transition(booking, BookingStatus.CANCELLED)
        # Releases the seats if the booking had been paid
        await self.recalculator.recompute_ride(ride)
        await self.session.commit()
        logger.info("Booking %d cancelled (was %s)", booking.id, previous.value)

        await dispatch_safely(self.notifier.notify_booking_cancellation, booking.id)
        return booking

    async def record_payment(
        self, booking_id: int, payment_ref: Optional[str] = None
    ) -> BookingModel:
        booking, ride = await self._lock(booking_id)

        if ApprovalStatus(booking.approval_status) != ApprovalStatus.APPROVED:
            raise InvalidBookingState(
                "Booking must be approved by driver before payment"
            )
        if BookingStatus(booking.status) != BookingStatus.PENDING:
            raise InvalidBookingState(
                f"Booking is already {BookingStatus(booking.status).value}"
            )
        # Read-then-write under the ride row lock: the sole point where a
        # seat is consumed.
        await self._ensure_capacity(ride, booking.seats_booked, exclude=booking.id)

        self._transition(booking, BookingStatus.PAID)
        booking.payment_intent_ref = payment_ref
        await self.recalculator.recompute_ride(ride)
        await self.session.commit()
        logger.info(
            "Booking %d paid (ref=%s); ride %d now %d/%d available",
            booking.id, payment_ref, ride.id, ride.seats_available, ride.seats_total,
        )

        await dispatch_safely(self.notifier.notify_payment_confirmation, booking.id)
        return booking

    # ── Internals ─────────────────────────────────────────────────

    async def _lock(self, booking_id: int) -> tuple[BookingModel, RideModel]:
        """Lock the owning ride first, then the booking (fixed lock order)."""
        booking = await self.bookings.get_by_id(booking_id)
        if booking is None:
            raise NotFound("Booking not found")
        ride = await self.rides.get_for_update(booking.ride_id)
        if ride is None:
            raise NotFound("Ride not found")
        booking = await self.bookings.get_for_update(booking_id)
        return booking, ride

    async def _ensure_capacity(
        self, ride: RideModel, seats: int, exclude: Optional[int] = None
    ) -> None:
        confirmed = await self.bookings.confirmed_seats(
            ride.id, exclude_booking_id=exclude
        )
        check = validate_booking_request(
            RideStatus(ride.status), ride.seats_total, confirmed, seats
        )
        if check.is_valid:
            return
        if RideStatus(ride.status) not in BOOKABLE_RIDE_STATUSES:
            raise InvalidRideState(check.error_message)
        raise CapacityExceeded(check.available_seats, seats, check.error_message)

    @staticmethod
    def _require_driver(ride: RideModel, actor_id: Optional[int]) -> None:
        if actor_id is not None and actor_id != ride.driver_id:
            raise Forbidden("Only the ride's driver can manage its bookings")

    @staticmethod
    def _transition(booking: BookingModel, target: BookingStatus) -> None:
        if BookingStatus(booking.status) in TERMINAL_BOOKING_STATUSES:
            raise InvalidBookingState(
                f"Booking is already {BookingStatus(booking.status).value}"
            )
        try:
            transition_booking(booking, target)
        except InvalidStateTransition as exc:
            raise InvalidBookingState(str(exc)) from exc
