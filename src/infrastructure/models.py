"""
SQLAlchemy ORM models  (maps to PostgreSQL).

Tables
------
* ``users``            -- riders and drivers
* ``rides``            -- driver-offered trips with fixed seat capacity
* ``bookings``         -- a rider's request for N seats on a ride
* ``background_jobs``  -- append-only ledger of sweep runs

Indexes
-------
* **B-Tree** on ``(status, departure_time)`` for the sweeper predicates.
* **B-Tree** on ``(ride_id, status)`` for the confirmed-seat sum and the
  sweep cascades, and ``(ride_id, rider_id)`` for the duplicate check.
"""

import enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)

from .database import Base
from src.domain.enums import (
    ApprovalStatus,
    BookingStatus,
    JobStatus,
    JobType,
    RideStatus,
)


def _enum(enum_cls: type[enum.Enum], name: str) -> Enum:
    """Persist enum *values* (``open``) rather than member names (``OPEN``)."""
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
    )


class UserModel(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    is_driver = Column(Boolean, default=False, nullable=False)
    rating_driver = Column(Float, default=5.0)
    rating_rider = Column(Float, default=5.0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class RideModel(Base):
    __tablename__ = "rides"

    id = Column(Integer, primary_key=True, autoincrement=True)
    driver_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    origin_label = Column(String(255), nullable=False, default="")
    destination_label = Column(String(255), nullable=False, default="")

    seats_total = Column(Integer, nullable=False)
    # Derived cache; only the availability recalculator writes it
    seats_available = Column(Integer, nullable=False)
    status = Column(
        _enum(RideStatus, "ride_status"), default=RideStatus.OPEN, nullable=False
    )

    departure_time = Column(DateTime(timezone=True), nullable=False)
    arrival_time = Column(DateTime(timezone=True), nullable=True)
    price = Column(Float, nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    completed_at = Column(DateTime(timezone=True), nullable=True)
    auto_completed = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("seats_total >= 1", name="ck_rides_seats_total"),
        CheckConstraint(
            "seats_available >= 0 AND seats_available <= seats_total",
            name="ck_rides_seats_available",
        ),
        Index("idx_rides_status_departure", "status", "departure_time"),
        Index("idx_rides_driver", "driver_id"),
    )
    # Fetch server-side timestamps at flush time so responses never lazy-load
    __mapper_args__ = {"eager_defaults": True}


class BookingModel(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ride_id = Column(Integer, ForeignKey("rides.id"), nullable=False)
    rider_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    seats_booked = Column(Integer, nullable=False)

    status = Column(
        _enum(BookingStatus, "booking_status"),
        default=BookingStatus.PENDING,
        nullable=False,
    )
    approval_status = Column(
        _enum(ApprovalStatus, "approval_status"),
        default=ApprovalStatus.PENDING,
        nullable=False,
    )

    price_per_seat = Column(Float, nullable=False)
    total_price = Column(Float, nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    payment_intent_ref = Column(String(255), nullable=True)

    approved_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "seats_booked >= 1 AND seats_booked <= 8",
            name="ck_bookings_seats_booked",
        ),
        Index("idx_bookings_ride_status", "ride_id", "status"),
        Index("idx_bookings_ride_rider", "ride_id", "rider_id"),
    )
    __mapper_args__ = {"eager_defaults": True}


class BackgroundJobModel(Base):
    __tablename__ = "background_jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_type = Column(_enum(JobType, "job_type"), nullable=False)
    status = Column(
        _enum(JobStatus, "job_status"), default=JobStatus.RUNNING, nullable=False
    )
    started_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    affected_rows = Column(Integer, default=0, nullable=False)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_background_jobs_created", "created_at"),
        Index("idx_background_jobs_type", "job_type"),
    )
