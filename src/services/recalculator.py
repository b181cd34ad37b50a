"""
Availability Recalculator
=========================

Binds the pure rule in :mod:`src.domain.availability` to the store: read
the ride and its confirmed-seat sum, derive ``(seats_available, status)``
and write the pair back through the Capacity Ledger.  Safe to call any
number of times; a second call without an intervening mutation writes the
same values.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from src.domain.availability import Availability, compute_availability
from src.domain.entities import transition_ride
from src.domain.enums import RideStatus
from src.domain.errors import NotFound
from src.infrastructure.models import RideModel
from src.infrastructure.repositories import BookingRepository, RideRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconcileResult:
    ride_id: int
    seats_total: int
    confirmed_seats: int
    before: Availability
    after: Availability

    @property
    def was_incorrect(self) -> bool:
        return self.before != self.after


class AvailabilityRecalculator:
    def __init__(self, session: AsyncSession):
        self.rides = RideRepository(session)
        self.bookings = BookingRepository(session)

    async def recompute(self, ride_id: int) -> Availability:
        ride = await self.rides.get_by_id(ride_id)
        if ride is None:
            raise NotFound(f"Ride {ride_id} not found")
        return await self.recompute_ride(ride)

    async def recompute_ride(self, ride: RideModel) -> Availability:
        confirmed = await self.bookings.confirmed_seats(ride.id)
        result = compute_availability(
            ride.seats_total, RideStatus(ride.status), confirmed
        )
        transition_ride(ride, result.status)
        await self.rides.set_seats_and_status(
            ride, result.seats_available, result.status
        )
        return result

    async def reconcile_all(self) -> list[ReconcileResult]:
        """Recompute every bookable ride and report which cached values drifted."""
        results: list[ReconcileResult] = []
        for ride in await self.rides.get_non_terminal():
            before = Availability(ride.seats_available, RideStatus(ride.status))
            confirmed = await self.bookings.confirmed_seats(ride.id)
            after = await self.recompute_ride(ride)
            item = ReconcileResult(
                ride_id=ride.id,
                seats_total=ride.seats_total,
                confirmed_seats=confirmed,
                before=before,
                after=after,
            )
            if item.was_incorrect:
                logger.warning(
                    "Ride %d drifted: %d/%s -> %d/%s",
                    ride.id,
                    before.seats_available,
                    before.status.value,
                    after.seats_available,
                    after.status.value,
                )
            results.append(item)
        return results
