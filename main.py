"""
Ride Capacity & Booking Engine
==============================
Entry point. Run with: uvicorn main:app --reload

The sweeper loop starts with the app; set ``SWEEPER_ENABLED=false`` when an
external scheduler drives ``/api/v1/cron/process-rides`` instead.
"""

import uvicorn

from src.api.app import create_app
from src.config import settings

app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
        reload=True,
    )
