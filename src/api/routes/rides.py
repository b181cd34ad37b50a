"""
Ride endpoints
==============

POST /api/v1/rides                             -- post a ride (driver)
GET  /api/v1/rides/{ride_id}                   -- ride with cached capacity
PUT  /api/v1/rides/{ride_id}/cancel            -- cancel ride + active bookings
PUT  /api/v1/rides/{ride_id}/complete          -- driver marks ride completed
POST /api/v1/rides/{ride_id}/validate-booking  -- dry-run capacity check
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Body, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_db, get_notifier
from src.api.middleware import limiter
from src.api.schemas import (
    RideActionRequest,
    RideActionResponse,
    RideCreateRequest,
    RideResponse,
    ValidateBookingRequest,
    ValidateBookingResponse,
)
from src.config import settings
from src.services.bookings import BookingLifecycleManager
from src.services.notifications import NotificationDispatcher
from src.services.rides import RideService

router = APIRouter(prefix="/rides", tags=["rides"])


@router.post(
    "",
    status_code=201,
    response_model=RideResponse,
    summary="Post a ride",
)
@limiter.limit(settings.rate_limit)
async def create_ride(
    request: Request,
    body: RideCreateRequest,
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    return await RideService(db, notifier).create_ride(
        driver_id=body.driver_id,
        seats_total=body.seats_total,
        departure_time=body.departure_time,
        arrival_time=body.arrival_time,
        price=body.price,
        currency=body.currency,
        origin_label=body.origin_label,
        destination_label=body.destination_label,
    )


@router.get(
    "/{ride_id}",
    response_model=RideResponse,
    summary="Get ride status and capacity",
)
@limiter.limit(settings.rate_limit)
async def get_ride(
    request: Request,
    ride_id: int,
    db: AsyncSession = Depends(get_db),
):
    return await RideService(db).get_ride(ride_id)


@router.put(
    "/{ride_id}/cancel",
    response_model=RideActionResponse,
    summary="Cancel a ride",
    description=(
        "Transitions an open or full ride to cancelled and cascades the "
        "cancellation to every pending or paid booking on it."
    ),
)
@limiter.limit(settings.rate_limit)
async def cancel_ride(
    request: Request,
    ride_id: int,
    body: Optional[RideActionRequest] = Body(None),
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    actor_id = body.actor_id if body else None
    ride, cancelled = await RideService(db, notifier).cancel_ride(ride_id, actor_id)
    return RideActionResponse(
        ride=RideResponse.model_validate(ride), bookings_affected=cancelled
    )


@router.put(
    "/{ride_id}/complete",
    response_model=RideActionResponse,
    summary="Complete a ride",
    description="Driver-initiated completion; paid bookings become completed.",
)
@limiter.limit(settings.rate_limit)
async def complete_ride(
    request: Request,
    ride_id: int,
    body: Optional[RideActionRequest] = Body(None),
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    actor_id = body.actor_id if body else None
    ride, completed = await RideService(db, notifier).complete_ride(ride_id, actor_id)
    return RideActionResponse(
        ride=RideResponse.model_validate(ride), bookings_affected=completed
    )


@router.post(
    "/{ride_id}/validate-booking",
    response_model=ValidateBookingResponse,
    summary="Dry-run a booking request against current capacity",
)
@limiter.limit(settings.rate_limit)
async def validate_booking(
    request: Request,
    ride_id: int,
    body: ValidateBookingRequest,
    db: AsyncSession = Depends(get_db),
):
    result = await BookingLifecycleManager(db).validate_booking(
        ride_id, body.seats_requested
    )
    return ValidateBookingResponse(
        is_valid=result.is_valid,
        available_seats=result.available_seats,
        error_message=result.error_message,
    )
