"""
Admin / observability endpoints
===============================

POST /api/v1/admin/fix-ride-status -- recompute every bookable ride, report drift
GET  /api/v1/admin/health          -- simple health check
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_db
from src.api.middleware import limiter
from src.api.schemas import HealthResponse, ReconcileResponse, RideReconcileItem
from src.config import settings
from src.services.recalculator import AvailabilityRecalculator

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post(
    "/fix-ride-status",
    response_model=ReconcileResponse,
    summary="Recompute cached availability for every open or full ride",
)
@limiter.limit(settings.rate_limit)
async def fix_ride_status(
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    results = await AvailabilityRecalculator(db).reconcile_all()
    await db.commit()

    details = [
        RideReconcileItem(
            ride_id=r.ride_id,
            seats_total=r.seats_total,
            confirmed_seats=r.confirmed_seats,
            seats_available_before=r.before.seats_available,
            seats_available_after=r.after.seats_available,
            status_before=r.before.status,
            status_after=r.after.status,
            was_incorrect=r.was_incorrect,
        )
        for r in results
    ]
    return ReconcileResponse(
        total_rides_checked=len(details),
        rides_fixed=sum(1 for d in details if d.was_incorrect),
        details=details,
    )


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()
