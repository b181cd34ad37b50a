"""
Notification dispatcher (collaborator seam)
===========================================

The engine announces lifecycle events; delivery is somebody else's
problem.  Every call goes through :func:`dispatch_safely` *after* the
owning transaction has committed, so a failing transport is logged and
never rolls back or fails the booking/ride transition.

Backends
--------
* ``log``     -- writes each event to the application log (default).
* ``webhook`` -- POSTs ``{"event": ..., **data}`` as JSON with ``httpx``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable

import httpx

from src.config import settings

logger = logging.getLogger(__name__)


class NotificationDispatcher(ABC):
    @abstractmethod
    async def send(self, event: str, **data: Any) -> None: ...

    async def notify_booking_request(self, booking_id: int) -> None:
        await self.send("booking_request", booking_id=booking_id)

    async def notify_booking_confirmation(self, booking_id: int) -> None:
        await self.send("booking_confirmation", booking_id=booking_id)

    async def notify_booking_rejection(self, booking_id: int) -> None:
        await self.send("booking_rejection", booking_id=booking_id)

    async def notify_booking_cancellation(self, booking_id: int) -> None:
        await self.send("booking_cancellation", booking_id=booking_id)

    async def notify_payment_confirmation(self, booking_id: int) -> None:
        await self.send("payment_confirmation", booking_id=booking_id)

    async def notify_ride_completion(self, ride_id: int) -> None:
        await self.send("ride_completion", ride_id=ride_id)

    async def notify_ride_cancellation(self, ride_id: int, cancelled_by: str) -> None:
        await self.send("ride_cancellation", ride_id=ride_id, cancelled_by=cancelled_by)

    async def schedule_ride_reminder(self, ride_id: int) -> None:
        await self.send("ride_reminder", ride_id=ride_id)


class LoggingNotificationDispatcher(NotificationDispatcher):
    async def send(self, event: str, **data: Any) -> None:
        logger.info("Notification %s %s", event, data)


class WebhookNotificationDispatcher(NotificationDispatcher):
    def __init__(
        self,
        url: str,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url
        self.timeout = timeout
        self.transport = transport

    async def send(self, event: str, **data: Any) -> None:
        async with httpx.AsyncClient(
            timeout=self.timeout, transport=self.transport
        ) as client:
            resp = await client.post(self.url, json={"event": event, **data})
            resp.raise_for_status()


async def dispatch_safely(
    fn: Callable[..., Awaitable[None]], *args: Any
) -> bool:
    """Run a side effect; log and swallow its failure. Returns success."""
    try:
        await fn(*args)
        return True
    except Exception:
        logger.exception(
            "Side effect %s%r failed", getattr(fn, "__name__", fn), args
        )
        return False


def build_notifier() -> NotificationDispatcher:
    if settings.notification_backend == "webhook":
        if not settings.notification_webhook_url:
            raise ValueError("notification_webhook_url is required for webhook backend")
        return WebhookNotificationDispatcher(
            settings.notification_webhook_url,
            timeout=settings.notification_timeout_seconds,
        )
    return LoggingNotificationDispatcher()
