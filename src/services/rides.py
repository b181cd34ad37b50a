"""
Driver-side ride operations: post, cancel, complete.

Cancelling a ride cascades to every *active* booking (pending or paid);
completing it moves paid bookings to completed.  Both finish with a
recalculation so the cached seat count matches the booking set even on a
terminal ride.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.domain.entities import (
    InvalidStateTransition,
    as_utc,
    transition_ride,
    utcnow,
)
from src.domain.enums import (
    ACTIVE_BOOKING_STATUSES,
    TERMINAL_RIDE_STATUSES,
    BookingStatus,
    RideStatus,
)
from src.domain.errors import (
    Forbidden,
    InvalidRideState,
    NotFound,
    ValidationError,
)
from src.infrastructure.models import RideModel
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


class RideService:
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

    async def get_ride(self, ride_id: int) -> RideModel:
        ride = await self.rides.get_by_id(ride_id)
        if ride is None:
            raise NotFound("Ride not found")
        return ride

    async def create_ride(
        self,
        *,
        driver_id: int,
        seats_total: int,
        departure_time: datetime,
        price: float,
        currency: Optional[str] = None,
        origin_label: str = "",
        destination_label: str = "",
        arrival_time: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> RideModel:
        now = now or utcnow()
        if not 1 <= seats_total <= settings.max_seats_per_ride:
            raise ValidationError(
                f"Seats must be between 1 and {settings.max_seats_per_ride}"
            )
        if price <= 0:
            raise ValidationError("Price must be greater than 0")
        departure_time = as_utc(departure_time)
        if departure_time <= now:
            raise ValidationError("Departure time must be in the future")
        arrival_time = as_utc(arrival_time)
        if arrival_time is not None and arrival_time <= departure_time:
            raise ValidationError("Arrival time must be after departure time")

        driver = await self.users.get_by_id(driver_id)
        if driver is None:
            raise NotFound("User not found")
        if not driver.is_driver:
            raise Forbidden("User is not registered as a driver")

        ride = await self.rides.create_ride(
            driver_id=driver_id,
            seats_total=seats_total,
            departure_time=departure_time,
            arrival_time=arrival_time,
            price=price,
            currency=(currency or settings.default_currency).upper(),
            origin_label=origin_label,
            destination_label=destination_label,
        )
        await self.session.commit()
        logger.info("Ride %d posted by driver %d (%d seats)", ride.id, driver_id, seats_total)
        return ride

    async def cancel_ride(
        self, ride_id: int, actor_id: Optional[int] = None
    ) -> tuple[RideModel, int]:
        """Cancel the ride and its active bookings. Returns (ride, cancelled)."""
        ride = await self._lock_owned(ride_id, actor_id)
        self._transition(ride, RideStatus.CANCELLED)

        cancelled = await self.bookings.bulk_set_status(
            [ride.id], ACTIVE_BOOKING_STATUSES, BookingStatus.CANCELLED, utcnow()
        )
        await self.recalculator.recompute_ride(ride)
        await self.session.commit()
        logger.info("Ride %d cancelled; %d booking(s) cascaded", ride.id, cancelled)

        await dispatch_safely(self.notifier.notify_ride_cancellation, ride.id, "driver")
        return ride, cancelled

    async def complete_ride(
        self, ride_id: int, actor_id: Optional[int] = None
    ) -> tuple[RideModel, int]:
        """Driver-initiated completion. Returns (ride, bookings completed)."""
        ride = await self._lock_owned(ride_id, actor_id)
        now = utcnow()
        self._transition(ride, RideStatus.COMPLETED)
        ride.completed_at = now
        ride.auto_completed = False

        completed = await self.bookings.bulk_set_status(
            [ride.id], {BookingStatus.PAID}, BookingStatus.COMPLETED, now
        )
        await self.recalculator.recompute_ride(ride)
        await self.session.commit()
        logger.info("Ride %d completed by driver; %d booking(s) completed", ride.id, completed)

        await dispatch_safely(self.notifier.notify_ride_completion, ride.id)
        return ride, completed

    # ── Internals ─────────────────────────────────────────────────

    async def _lock_owned(self, ride_id: int, actor_id: Optional[int]) -> RideModel:
        ride = await self.rides.get_for_update(ride_id)
        if ride is None:
            raise NotFound("Ride not found")
        if actor_id is not None and actor_id != ride.driver_id:
            raise Forbidden("Only the ride's driver can change this ride")
        return ride

    @staticmethod
    def _transition(ride: RideModel, target: RideStatus) -> None:
        current = RideStatus(ride.status)
        if current in TERMINAL_RIDE_STATUSES:
            raise InvalidRideState(f"Ride is already {current.value}")
        try:
            transition_ride(ride, target)
        except InvalidStateTransition as exc:
            raise InvalidRideState(str(exc)) from exc
