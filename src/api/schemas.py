"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from src.domain.enums import (
    ApprovalStatus,
    BookingStatus,
    JobStatus,
    JobType,
    RideStatus,
)


# ── Requests ──────────────────────────────────────────────────────────


class RideCreateRequest(BaseModel):
    driver_id: int
    origin_label: str = Field("", max_length=255)
    destination_label: str = Field("", max_length=255)
    departure_time: datetime
    arrival_time: Optional[datetime] = None
    seats_total: int
    price: float
    currency: Optional[str] = Field(None, min_length=3, max_length=3)


class RideActionRequest(BaseModel):
    actor_id: Optional[int] = Field(
        None, description="Acting driver; checked against the ride's driver."
    )


class BookingCreateRequest(BaseModel):
    ride_id: int
    rider_id: int
    seats_requested: int


class BookingActionRequest(BaseModel):
    actor_id: Optional[int] = Field(
        None, description="Acting user; checked against the driver / rider."
    )


class PaymentRecordRequest(BaseModel):
    payment_intent_ref: Optional[str] = Field(None, max_length=255)


class ValidateBookingRequest(BaseModel):
    seats_requested: int = Field(..., ge=1)


class ProcessJobRequest(BaseModel):
    job_type: JobType
    shared_secret: str


# ── Responses ─────────────────────────────────────────────────────────


class RideResponse(BaseModel):
    id: int
    driver_id: int
    origin_label: str
    destination_label: str
    seats_total: int
    seats_available: int
    status: RideStatus
    departure_time: datetime
    arrival_time: Optional[datetime] = None
    price: float
    currency: str
    completed_at: Optional[datetime] = None
    auto_completed: bool
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class BookingResponse(BaseModel):
    id: int
    ride_id: int
    rider_id: int
    seats_booked: int
    status: BookingStatus
    approval_status: ApprovalStatus
    price_per_seat: float
    total_price: float
    currency: str
    payment_intent_ref: Optional[str] = None
    approved_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class CapacityResponse(BaseModel):
    total: int
    available: int


class BookingDetailResponse(BaseModel):
    booking: BookingResponse
    ride_status: RideStatus
    departure_time: datetime
    capacity: CapacityResponse


class RideActionResponse(BaseModel):
    ride: RideResponse
    bookings_affected: int


class ValidateBookingResponse(BaseModel):
    success: bool = True
    is_valid: bool
    available_seats: int
    error_message: Optional[str] = None


class JobResponse(BaseModel):
    id: int
    job_type: JobType
    status: JobStatus
    started_at: datetime
    completed_at: Optional[datetime] = None
    affected_rows: int
    error_message: Optional[str] = None

    model_config = {"from_attributes": True}


class ProcessJobResponse(BaseModel):
    success: bool
    job_id: int
    job_type: JobType
    affected_rows: int
    message: str
    error: Optional[str] = None


class RideReconcileItem(BaseModel):
    ride_id: int
    seats_total: int
    confirmed_seats: int
    seats_available_before: int
    seats_available_after: int
    status_before: RideStatus
    status_after: RideStatus
    was_incorrect: bool


class ReconcileResponse(BaseModel):
    total_rides_checked: int
    rides_fixed: int
    details: list[RideReconcileItem] = []


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    detail: str
