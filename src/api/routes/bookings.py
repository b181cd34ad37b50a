"""
Booking endpoints
=================

POST /api/v1/bookings                       -- request seats (pending/pending)
GET  /api/v1/bookings/{booking_id}          -- booking with ride capacity
PUT  /api/v1/bookings/{booking_id}/approve  -- driver approves (no reservation)
PUT  /api/v1/bookings/{booking_id}/reject   -- driver rejects
PUT  /api/v1/bookings/{booking_id}/cancel   -- rider or driver cancels
PUT  /api/v1/bookings/{booking_id}          -- record payment (consumes seats)
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Body, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_db, get_notifier
from src.api.middleware import limiter
from src.api.schemas import (
    BookingActionRequest,
    BookingCreateRequest,
    BookingDetailResponse,
    BookingResponse,
    CapacityResponse,
    PaymentRecordRequest,
)
from src.config import settings
from src.services.bookings import BookingLifecycleManager
from src.services.notifications import NotificationDispatcher

router = APIRouter(prefix="/bookings", tags=["bookings"])


def _actor(body: Optional[BookingActionRequest]) -> Optional[int]:
    return body.actor_id if body else None


@router.post(
    "",
    status_code=201,
    response_model=BookingResponse,
    summary="Request seats on a ride",
)
@limiter.limit(settings.rate_limit)
async def create_booking(
    request: Request,
    body: BookingCreateRequest,
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    return await BookingLifecycleManager(db, notifier).create_booking(
        ride_id=body.ride_id,
        rider_id=body.rider_id,
        seats_requested=body.seats_requested,
    )


@router.get(
    "/{booking_id}",
    response_model=BookingDetailResponse,
    summary="Get a booking with its ride capacity",
)
@limiter.limit(settings.rate_limit)
async def get_booking(
    request: Request,
    booking_id: int,
    db: AsyncSession = Depends(get_db),
):
    booking, ride = await BookingLifecycleManager(db).get_booking(booking_id)
    return BookingDetailResponse(
        booking=BookingResponse.model_validate(booking),
        ride_status=ride.status,
        departure_time=ride.departure_time,
        capacity=CapacityResponse(
            total=ride.seats_total, available=ride.seats_available
        ),
    )


@router.put(
    "/{booking_id}/approve",
    response_model=BookingResponse,
    summary="Approve a pending booking",
    description=(
        "Authorises the rider to pay. The seat is not reserved until the "
        "payment is recorded."
    ),
)
@limiter.limit(settings.rate_limit)
async def approve_booking(
    request: Request,
    booking_id: int,
    body: Optional[BookingActionRequest] = Body(None),
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    return await BookingLifecycleManager(db, notifier).approve_booking(
        booking_id, _actor(body)
    )


@router.put(
    "/{booking_id}/reject",
    response_model=BookingResponse,
    summary="Reject a booking",
)
@limiter.limit(settings.rate_limit)
async def reject_booking(
    request: Request,
    booking_id: int,
    body: Optional[BookingActionRequest] = Body(None),
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    return await BookingLifecycleManager(db, notifier).reject_booking(
        booking_id, _actor(body)
    )


@router.put(
    "/{booking_id}/cancel",
    response_model=BookingResponse,
    summary="Cancel a booking",
)
@limiter.limit(settings.rate_limit)
async def cancel_booking(
    request: Request,
    booking_id: int,
    body: Optional[BookingActionRequest] = Body(None),
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    return await BookingLifecycleManager(db, notifier).cancel_booking(
        booking_id, _actor(body)
    )


@router.put(
    "/{booking_id}",
    response_model=BookingResponse,
    summary="Record payment for an approved booking",
)
@limiter.limit(settings.rate_limit)
async def record_payment(
    request: Request,
    booking_id: int,
    body: PaymentRecordRequest,
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    return await BookingLifecycleManager(db, notifier).record_payment(
        booking_id, body.payment_intent_ref
    )
