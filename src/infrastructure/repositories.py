"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.  ``RideRepository`` doubles as the Capacity
Ledger: it reads rides and stores the seats/status pair the availability
recalculator derives, without applying any business rule itself.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import exists, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import BackgroundJobModel, BookingModel, RideModel, UserModel
from src.domain.entities import utcnow
from src.domain.enums import (
    ACTIVE_BOOKING_STATUSES,
    BOOKABLE_RIDE_STATUSES,
    CONFIRMED_BOOKING_STATUSES,
    BookingStatus,
    JobStatus,
    JobType,
    RideStatus,
)


class RideRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_ride(
        self,
        *,
        driver_id: int,
        seats_total: int,
        departure_time: datetime,
        price: float,
        currency: str,
        origin_label: str = "",
        destination_label: str = "",
        arrival_time: datetime | None = None,
    ) -> RideModel:
        ride = RideModel(
            driver_id=driver_id,
            origin_label=origin_label,
            destination_label=destination_label,
            seats_total=seats_total,
            seats_available=seats_total,
            status=RideStatus.OPEN,
            departure_time=departure_time,
            arrival_time=arrival_time,
            price=price,
            currency=currency,
            auto_completed=False,
        )
        self.session.add(ride)
        await self.session.flush()
        return ride

    async def get_by_id(self, ride_id: int) -> Optional[RideModel]:
        return await self.session.get(RideModel, ride_id)

    async def get_for_update(self, ride_id: int) -> Optional[RideModel]:
        """SELECT ... FOR UPDATE so capacity decisions see a stable row."""
        result = await self.session.execute(
            select(RideModel)
            .where(RideModel.id == ride_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def set_seats_and_status(
        self, ride: RideModel, seats_available: int, status: RideStatus
    ) -> RideModel:
        ride.seats_available = seats_available
        ride.status = status
        await self.session.flush()
        return ride

    async def get_non_terminal(self) -> list[RideModel]:
        result = await self.session.execute(
            select(RideModel)
            .where(RideModel.status.in_(BOOKABLE_RIDE_STATUSES))
            .order_by(RideModel.id)
            .with_for_update()
        )
        return list(result.scalars().all())

    async def stale_ride_ids(
        self, cutoff: datetime, *, with_paid_booking: bool
    ) -> list[int]:
        """Ids of bookable rides that departed before *cutoff*.

        ``with_paid_booking`` selects one side of the partition: rides that
        hold at least one paid booking, or rides that hold none.
        """
        paid = exists().where(
            BookingModel.ride_id == RideModel.id,
            BookingModel.status == BookingStatus.PAID,
        )
        query = select(RideModel.id).where(
            RideModel.departure_time < cutoff,
            RideModel.status.in_(BOOKABLE_RIDE_STATUSES),
            paid if with_paid_booking else ~paid,
        )
        result = await self.session.execute(
            query.with_for_update(skip_locked=True)
        )
        return list(result.scalars().all())

    async def bulk_expire(self, ride_ids: list[int], now: datetime) -> int:
        result = await self.session.execute(
            update(RideModel)
            .where(
                RideModel.id.in_(ride_ids),
                RideModel.status.in_(BOOKABLE_RIDE_STATUSES),
            )
            .values(
                status=RideStatus.EXPIRED, auto_completed=True, updated_at=now
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def bulk_complete(self, ride_ids: list[int], now: datetime) -> int:
        result = await self.session.execute(
            update(RideModel)
            .where(
                RideModel.id.in_(ride_ids),
                RideModel.status.in_(BOOKABLE_RIDE_STATUSES),
            )
            .values(
                status=RideStatus.COMPLETED,
                completed_at=now,
                auto_completed=True,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0


class BookingRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_booking(
        self,
        *,
        ride_id: int,
        rider_id: int,
        seats_booked: int,
        price_per_seat: float,
        currency: str,
    ) -> BookingModel:
        booking = BookingModel(
            ride_id=ride_id,
            rider_id=rider_id,
            seats_booked=seats_booked,
            price_per_seat=price_per_seat,
            total_price=round(seats_booked * price_per_seat, 2),
            currency=currency,
        )
        self.session.add(booking)
        await self.session.flush()
        return booking

    async def get_by_id(self, booking_id: int) -> Optional[BookingModel]:
        return await self.session.get(BookingModel, booking_id)

    async def get_for_update(self, booking_id: int) -> Optional[BookingModel]:
        result = await self.session.execute(
            select(BookingModel)
            .where(BookingModel.id == booking_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_for_ride(self, ride_id: int) -> list[BookingModel]:
        result = await self.session.execute(
            select(BookingModel)
            .where(BookingModel.ride_id == ride_id)
            .order_by(BookingModel.id)
        )
        return list(result.scalars().all())

    async def get_active_for_rider(
        self, ride_id: int, rider_id: int
    ) -> Optional[BookingModel]:
        result = await self.session.execute(
            select(BookingModel).where(
                BookingModel.ride_id == ride_id,
                BookingModel.rider_id == rider_id,
                BookingModel.status.in_(ACTIVE_BOOKING_STATUSES),
            )
        )
        return result.scalars().first()

    async def confirmed_seats(
        self, ride_id: int, exclude_booking_id: int | None = None
    ) -> int:
        """Sum of seats held by paid/completed bookings on *ride_id*."""
        query = select(func.coalesce(func.sum(BookingModel.seats_booked), 0)).where(
            BookingModel.ride_id == ride_id,
            BookingModel.status.in_(CONFIRMED_BOOKING_STATUSES),
        )
        if exclude_booking_id is not None:
            query = query.where(BookingModel.id != exclude_booking_id)
        result = await self.session.execute(query)
        return int(result.scalar() or 0)

    async def bulk_set_status(
        self,
        ride_ids: list[int],
        from_statuses: set[BookingStatus] | frozenset[BookingStatus],
        to_status: BookingStatus,
        now: datetime,
    ) -> int:
        """Cascade a status change to every matching booking of *ride_ids*."""
        values: dict = {"status": to_status, "updated_at": now}
        if to_status == BookingStatus.COMPLETED:
            values["completed_at"] = now
        result = await self.session.execute(
            update(BookingModel)
            .where(
                BookingModel.ride_id.in_(ride_ids),
                BookingModel.status.in_(from_statuses),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0


class JobRepository:
    """Job Ledger: one row per sweep invocation."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def start(self, job_type: JobType) -> BackgroundJobModel:
        job = BackgroundJobModel(
            job_type=job_type,
            status=JobStatus.RUNNING,
            started_at=utcnow(),
            affected_rows=0,
        )
        self.session.add(job)
        await self.session.flush()
        return job

    async def complete(
        self, job: BackgroundJobModel, affected_rows: int
    ) -> BackgroundJobModel:
        job.status = JobStatus.COMPLETED
        job.completed_at = utcnow()
        job.affected_rows = affected_rows
        await self.session.flush()
        return job

    async def fail(
        self, job: BackgroundJobModel, error_message: str
    ) -> BackgroundJobModel:
        job.status = JobStatus.FAILED
        job.completed_at = utcnow()
        job.error_message = error_message
        await self.session.flush()
        return job

    async def get_by_id(self, job_id: int) -> Optional[BackgroundJobModel]:
        return await self.session.get(BackgroundJobModel, job_id)

    async def get_recent(self, limit: int = 10) -> list[BackgroundJobModel]:
        result = await self.session.execute(
            select(BackgroundJobModel)
            .order_by(BackgroundJobModel.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, user_id: int) -> Optional[UserModel]:
        return await self.session.get(UserModel, user_id)
