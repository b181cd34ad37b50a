"""
Stale-ride sweeps
=================

Two set-based sweeps partition every bookable ride whose departure is more
than ``stale_ride_grace_hours`` in the past:

* **expire**   -- no paid booking:   ride -> expired, pending bookings -> expired
* **complete** -- any paid booking:  ride -> completed, paid bookings -> completed

A ride is eligible for exactly one of them.  Both re-check the status
predicate inside the UPDATE, so re-running a sweep (or racing an API call
that already moved the ride) is harmless.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.domain.entities import utcnow
from src.domain.enums import BookingStatus
from src.infrastructure.repositories import BookingRepository, RideRepository

logger = logging.getLogger(__name__)


def stale_cutoff(now: datetime) -> datetime:
    return now - timedelta(hours=settings.stale_ride_grace_hours)


async def expire_stale_rides(
    session: AsyncSession, now: Optional[datetime] = None
) -> int:
    """Expire stale rides without a paid booking. Returns rides expired."""
    now = now or utcnow()
    rides = RideRepository(session)
    ride_ids = await rides.stale_ride_ids(stale_cutoff(now), with_paid_booking=False)
    if not ride_ids:
        return 0

    expired = await rides.bulk_expire(ride_ids, now)
    bookings = await BookingRepository(session).bulk_set_status(
        ride_ids, {BookingStatus.PENDING}, BookingStatus.EXPIRED, now
    )
    logger.info("Expired %d stale ride(s), %d pending booking(s)", expired, bookings)
    return expired


async def auto_complete_rides(
    session: AsyncSession, now: Optional[datetime] = None
) -> int:
    """Complete stale rides holding a paid booking. Returns rides completed."""
    now = now or utcnow()
    rides = RideRepository(session)
    ride_ids = await rides.stale_ride_ids(stale_cutoff(now), with_paid_booking=True)
    if not ride_ids:
        return 0

    completed = await rides.bulk_complete(ride_ids, now)
    bookings = await BookingRepository(session).bulk_set_status(
        ride_ids, {BookingStatus.PAID}, BookingStatus.COMPLETED, now
    )
    logger.info("Auto-completed %d ride(s), %d paid booking(s)", completed, bookings)
    return completed
