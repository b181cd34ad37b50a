"""
Service-level tests for the booking lifecycle manager and ride operations.

Each test runs against a fresh in-memory SQLite database.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from src.domain.entities import utcnow
from src.domain.enums import ApprovalStatus, BookingStatus, RideStatus
from src.domain.errors import (
    CapacityExceeded,
    DuplicateBooking,
    Forbidden,
    InvalidBookingState,
    InvalidRideState,
    InvalidSeatCount,
    NotFound,
    RideDeparted,
    SelfBookingForbidden,
    ValidationError,
)
from src.services.bookings import BookingLifecycleManager
from src.services.rides import RideService
from tests.conftest import RecordingNotifier


async def _paid(manager, ride, rider, seats):
    booking = await manager.create_booking(ride.id, rider.id, seats)
    await manager.approve_booking(booking.id)
    return await manager.record_payment(booking.id, f"pi_{booking.id}")


# ── Create ────────────────────────────────────────────────────────────


class TestCreateBooking:
    @pytest.mark.asyncio
    async def test_creates_pending_pending(self, db_session, factory, notifier):
        driver = await factory.user(is_driver=True)
        rider = await factory.user()
        ride = await factory.ride(driver, seats_total=4, price=12.5)

        manager = BookingLifecycleManager(db_session, notifier)
        booking = await manager.create_booking(ride.id, rider.id, 2)

        assert booking.status == BookingStatus.PENDING
        assert booking.approval_status == ApprovalStatus.PENDING
        assert booking.price_per_seat == 12.5
        assert booking.total_price == 25.0
        # Pending requests reserve nothing
        assert ride.seats_available == 4
        assert ride.status == RideStatus.OPEN
        assert notifier.names() == ["booking_request"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("seats", [0, -1, 9])
    async def test_seat_count_bounds(self, db_session, factory, seats):
        driver = await factory.user(is_driver=True)
        rider = await factory.user()
        ride = await factory.ride(driver)

        with pytest.raises(InvalidSeatCount):
            await BookingLifecycleManager(db_session).create_booking(
                ride.id, rider.id, seats
            )

    @pytest.mark.asyncio
    async def test_unknown_ride(self, db_session, factory):
        rider = await factory.user()
        with pytest.raises(NotFound):
            await BookingLifecycleManager(db_session).create_booking(999, rider.id, 1)

    @pytest.mark.asyncio
    async def test_unknown_rider(self, db_session, factory):
        driver = await factory.user(is_driver=True)
        ride = await factory.ride(driver)
        with pytest.raises(NotFound):
            await BookingLifecycleManager(db_session).create_booking(ride.id, 999, 1)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status", [RideStatus.CANCELLED, RideStatus.COMPLETED, RideStatus.EXPIRED]
    )
    async def test_terminal_ride_rejects(self, db_session, factory, status):
        driver = await factory.user(is_driver=True)
        rider = await factory.user()
        ride = await factory.ride(driver, status=status)

        with pytest.raises(InvalidRideState):
            await BookingLifecycleManager(db_session).create_booking(
                ride.id, rider.id, 1
            )

    @pytest.mark.asyncio
    async def test_departed_ride_rejects(self, db_session, factory):
        driver = await factory.user(is_driver=True)
        rider = await factory.user()
        ride = await factory.ride(driver, departure=utcnow() - timedelta(minutes=5))

        with pytest.raises(RideDeparted):
            await BookingLifecycleManager(db_session).create_booking(
                ride.id, rider.id, 1
            )

    @pytest.mark.asyncio
    async def test_driver_cannot_book_own_ride(self, db_session, factory):
        driver = await factory.user(is_driver=True)
        ride = await factory.ride(driver)

        with pytest.raises(SelfBookingForbidden):
            await BookingLifecycleManager(db_session).create_booking(
                ride.id, driver.id, 1
            )

    @pytest.mark.asyncio
    async def test_duplicate_active_booking(self, db_session, factory):
        driver = await factory.user(is_driver=True)
        rider = await factory.user()
        ride = await factory.ride(driver)
        manager = BookingLifecycleManager(db_session)

        await manager.create_booking(ride.id, rider.id, 1)
        with pytest.raises(DuplicateBooking):
            await manager.create_booking(ride.id, rider.id, 1)

    @pytest.mark.asyncio
    async def test_rebook_after_cancellation(self, db_session, factory):
        driver = await factory.user(is_driver=True)
        rider = await factory.user()
        ride = await factory.ride(driver)
        manager = BookingLifecycleManager(db_session)

        first = await manager.create_booking(ride.id, rider.id, 1)
        await manager.cancel_booking(first.id)
        second = await manager.create_booking(ride.id, rider.id, 1)
        assert second.id != first.id

    @pytest.mark.asyncio
    async def test_pending_requests_do_not_block_each_other(self, db_session, factory):
        driver = await factory.user(is_driver=True)
        a, b = await factory.user(), await factory.user()
        ride = await factory.ride(driver, seats_total=2)
        manager = BookingLifecycleManager(db_session)

        await manager.create_booking(ride.id, a.id, 2)
        booking = await manager.create_booking(ride.id, b.id, 2)
        assert booking.status == BookingStatus.PENDING


# ── Approve / reject ──────────────────────────────────────────────────


class TestApproveReject:
    @pytest.mark.asyncio
    async def test_approve_keeps_status_pending(self, db_session, factory, notifier):
        driver = await factory.user(is_driver=True)
        rider = await factory.user()
        ride = await factory.ride(driver)
        manager = BookingLifecycleManager(db_session, notifier)

        booking = await manager.create_booking(ride.id, rider.id, 2)
        booking = await manager.approve_booking(booking.id, actor_id=driver.id)

        assert booking.status == BookingStatus.PENDING
        assert booking.approval_status == ApprovalStatus.APPROVED
        assert booking.approved_at is not None
        assert ride.seats_available == 4
        assert notifier.names() == [
            "booking_request",
            "booking_confirmation",
            "ride_reminder",
        ]

    @pytest.mark.asyncio
    async def test_approve_twice_fails(self, db_session, factory):
        driver = await factory.user(is_driver=True)
        rider = await factory.user()
        ride = await factory.ride(driver)
        manager = BookingLifecycleManager(db_session)

        booking = await manager.create_booking(ride.id, rider.id, 1)
        await manager.approve_booking(booking.id)
        with pytest.raises(InvalidBookingState):
            await manager.approve_booking(booking.id)

    @pytest.mark.asyncio
    async def test_approve_by_non_driver_forbidden(self, db_session, factory):
        driver = await factory.user(is_driver=True)
        rider = await factory.user()
        ride = await factory.ride(driver)
        manager = BookingLifecycleManager(db_session)

        booking = await manager.create_booking(ride.id, rider.id, 1)
        with pytest.raises(Forbidden):
            await manager.approve_booking(booking.id, actor_id=rider.id)

    @pytest.mark.asyncio
    async def test_approve_fails_when_confirmed_seats_left_no_room(
        self, db_session, factory
    ):
        driver = await factory.user(is_driver=True)
        a, b = await factory.user(), await factory.user()
        ride = await factory.ride(driver, seats_total=3)
        manager = BookingLifecycleManager(db_session)

        late = await manager.create_booking(ride.id, b.id, 2)
        await _paid(manager, ride, a, 2)

        with pytest.raises(CapacityExceeded) as exc:
            await manager.approve_booking(late.id)
        assert exc.value.available_seats == 1

    @pytest.mark.asyncio
    async def test_reject(self, db_session, factory, notifier):
        driver = await factory.user(is_driver=True)
        rider = await factory.user()
        ride = await factory.ride(driver)
        manager = BookingLifecycleManager(db_session, notifier)

        booking = await manager.create_booking(ride.id, rider.id, 1)
        booking = await manager.reject_booking(booking.id)

        assert booking.status == BookingStatus.CANCELLED
        assert booking.approval_status == ApprovalStatus.REJECTED
        assert "booking_rejection" in notifier.names()

    @pytest.mark.asyncio
    async def test_reject_terminal_fails(self, db_session, factory):
        driver = await factory.user(is_driver=True)
        rider = await factory.user()
        ride = await factory.ride(driver)
        manager = BookingLifecycleManager(db_session)

        booking = await manager.create_booking(ride.id, rider.id, 1)
        await manager.cancel_booking(booking.id)
        with pytest.raises(InvalidBookingState):
            await manager.reject_booking(booking.id)


# ── Payment ───────────────────────────────────────────────────────────


class TestRecordPayment:
    @pytest.mark.asyncio
    async def test_requires_approval(self, db_session, factory):
        driver = await factory.user(is_driver=True)
        rider = await factory.user()
        ride = await factory.ride(driver)
        manager = BookingLifecycleManager(db_session)

        booking = await manager.create_booking(ride.id, rider.id, 1)
        with pytest.raises(InvalidBookingState):
            await manager.record_payment(booking.id, "pi_1")

    @pytest.mark.asyncio
    async def test_cannot_pay_twice(self, db_session, factory):
        driver = await factory.user(is_driver=True)
        rider = await factory.user()
        ride = await factory.ride(driver)
        manager = BookingLifecycleManager(db_session)

        booking = await _paid(manager, ride, rider, 1)
        with pytest.raises(InvalidBookingState):
            await manager.record_payment(booking.id, "pi_again")

    @pytest.mark.asyncio
    async def test_unknown_booking(self, db_session):
        with pytest.raises(NotFound):
            await BookingLifecycleManager(db_session).record_payment(12345, "pi")

    @pytest.mark.asyncio
    async def test_scenario_a(self, db_session, factory, notifier):
        """Pay for 2 of 4 seats, then a 3-seat request no longer fits."""
        driver = await factory.user(is_driver=True)
        a, b = await factory.user(), await factory.user()
        ride = await factory.ride(driver, seats_total=4)
        manager = BookingLifecycleManager(db_session, notifier)

        booking = await manager.create_booking(ride.id, a.id, 2)
        assert (booking.status, booking.approval_status) == (
            BookingStatus.PENDING,
            ApprovalStatus.PENDING,
        )
        booking = await manager.approve_booking(booking.id)
        assert (booking.status, booking.approval_status) == (
            BookingStatus.PENDING,
            ApprovalStatus.APPROVED,
        )
        booking = await manager.record_payment(booking.id, "pi_a")
        assert (booking.status, booking.approval_status) == (
            BookingStatus.PAID,
            ApprovalStatus.APPROVED,
        )
        assert booking.payment_intent_ref == "pi_a"
        assert ride.seats_available == 2
        assert ride.status == RideStatus.OPEN
        assert "payment_confirmation" in notifier.names()

        with pytest.raises(CapacityExceeded) as exc:
            await manager.create_booking(ride.id, b.id, 3)
        assert exc.value.available_seats == 2

    @pytest.mark.asyncio
    async def test_scenario_b_first_to_pay_wins(self, db_session, factory):
        """Approvals only count confirmed seats; payment is the hard check."""
        driver = await factory.user(is_driver=True)
        a, b, c = await factory.user(), await factory.user(), await factory.user()
        ride = await factory.ride(driver, seats_total=4)
        manager = BookingLifecycleManager(db_session)

        ba = await manager.create_booking(ride.id, a.id, 2)
        bb = await manager.create_booking(ride.id, b.id, 2)
        bc = await manager.create_booking(ride.id, c.id, 2)
        for booking in (ba, bb, bc):
            await manager.approve_booking(booking.id)

        await manager.record_payment(ba.id, "pi_a")
        assert ride.seats_available == 2
        await manager.record_payment(bb.id, "pi_b")
        assert ride.seats_available == 0
        assert ride.status == RideStatus.FULL

        with pytest.raises(CapacityExceeded) as exc:
            await manager.record_payment(bc.id, "pi_c")
        assert exc.value.available_seats == 0

        bc = await manager.bookings.get_by_id(bc.id)
        assert bc.status == BookingStatus.PENDING
        assert await manager.bookings.confirmed_seats(ride.id) == 4


# ── Cancel ────────────────────────────────────────────────────────────


class TestCancelBooking:
    @pytest.mark.asyncio
    async def test_scenario_e_paid_cancellation_releases_seats(
        self, db_session, factory, notifier
    ):
        driver = await factory.user(is_driver=True)
        rider = await factory.user()
        ride = await factory.ride(driver, seats_total=4)
        manager = BookingLifecycleManager(db_session, notifier)

        booking = await _paid(manager, ride, rider, 2)
        assert (ride.seats_available, ride.status) == (2, RideStatus.OPEN)

        booking = await manager.cancel_booking(booking.id)
        assert booking.status == BookingStatus.CANCELLED
        assert booking.approval_status == ApprovalStatus.APPROVED
        assert (ride.seats_available, ride.status) == (4, RideStatus.OPEN)
        assert "booking_cancellation" in notifier.names()

    @pytest.mark.asyncio
    async def test_cancelling_reopens_full_ride(self, db_session, factory):
        driver = await factory.user(is_driver=True)
        rider = await factory.user()
        ride = await factory.ride(driver, seats_total=2)
        manager = BookingLifecycleManager(db_session)

        booking = await _paid(manager, ride, rider, 2)
        assert ride.status == RideStatus.FULL

        await manager.cancel_booking(booking.id)
        assert (ride.seats_available, ride.status) == (2, RideStatus.OPEN)

    @pytest.mark.asyncio
    async def test_cancel_twice_fails(self, db_session, factory):
        driver = await factory.user(is_driver=True)
        rider = await factory.user()
        ride = await factory.ride(driver)
        manager = BookingLifecycleManager(db_session)

        booking = await manager.create_booking(ride.id, rider.id, 1)
        await manager.cancel_booking(booking.id)
        with pytest.raises(InvalidBookingState):
            await manager.cancel_booking(booking.id)

    @pytest.mark.asyncio
    async def test_stranger_cannot_cancel(self, db_session, factory):
        driver = await factory.user(is_driver=True)
        rider, stranger = await factory.user(), await factory.user()
        ride = await factory.ride(driver)
        manager = BookingLifecycleManager(db_session)

        booking = await manager.create_booking(ride.id, rider.id, 1)
        with pytest.raises(Forbidden):
            await manager.cancel_booking(booking.id, actor_id=stranger.id)
        await manager.cancel_booking(booking.id, actor_id=driver.id)

    @pytest.mark.asyncio
    async def test_notification_failure_does_not_undo_transition(
        self, db_session, factory
    ):
        driver = await factory.user(is_driver=True)
        rider = await factory.user()
        ride = await factory.ride(driver)
        failing = RecordingNotifier(fail=True)
        manager = BookingLifecycleManager(db_session, failing)

        booking = await manager.create_booking(ride.id, rider.id, 1)
        booking = await manager.cancel_booking(booking.id)

        await db_session.refresh(booking)
        assert booking.status == BookingStatus.CANCELLED
        assert failing.names() == ["booking_request", "booking_cancellation"]


# ── Dry run ───────────────────────────────────────────────────────────


class TestValidateBooking:
    @pytest.mark.asyncio
    async def test_reports_availability_without_writing(self, db_session, factory):
        driver = await factory.user(is_driver=True)
        a = await factory.user()
        ride = await factory.ride(driver, seats_total=3)
        manager = BookingLifecycleManager(db_session)
        await _paid(manager, ride, a, 2)

        ok = await manager.validate_booking(ride.id, 1)
        too_many = await manager.validate_booking(ride.id, 2)

        assert ok.is_valid and ok.available_seats == 1
        assert not too_many.is_valid and too_many.available_seats == 1
        assert len(await manager.bookings.get_for_ride(ride.id)) == 1


# ── Ride operations ───────────────────────────────────────────────────


class TestRideService:
    @pytest.mark.asyncio
    async def test_create_ride(self, db_session, factory):
        driver = await factory.user(is_driver=True)
        ride = await RideService(db_session).create_ride(
            driver_id=driver.id,
            seats_total=3,
            departure_time=utcnow() + timedelta(hours=4),
            price=8.0,
            currency="eur",
        )
        assert ride.status == RideStatus.OPEN
        assert ride.seats_available == 3
        assert ride.currency == "EUR"
        assert ride.auto_completed is False

    @pytest.mark.asyncio
    async def test_create_ride_requires_driver(self, db_session, factory):
        rider = await factory.user()
        with pytest.raises(Forbidden):
            await RideService(db_session).create_ride(
                driver_id=rider.id,
                seats_total=3,
                departure_time=utcnow() + timedelta(hours=4),
                price=8.0,
            )

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides",
        [
            {"seats_total": 0},
            {"seats_total": 9},
            {"price": 0},
            {"departure_time": utcnow() - timedelta(hours=1)},
            {"arrival_time": utcnow() + timedelta(hours=1)},
        ],
    )
    async def test_create_ride_validation(self, db_session, factory, overrides):
        driver = await factory.user(is_driver=True)
        kwargs = dict(
            driver_id=driver.id,
            seats_total=3,
            departure_time=utcnow() + timedelta(hours=4),
            price=8.0,
        )
        kwargs.update(overrides)
        with pytest.raises(ValidationError):
            await RideService(db_session).create_ride(**kwargs)

    @pytest.mark.asyncio
    async def test_cancel_ride_cascades_to_active_bookings_only(
        self, db_session, factory, notifier
    ):
        driver = await factory.user(is_driver=True)
        a, b, c = await factory.user(), await factory.user(), await factory.user()
        ride = await factory.ride(driver, seats_total=4)
        manager = BookingLifecycleManager(db_session)

        paid = await _paid(manager, ride, a, 2)
        pending = await manager.create_booking(ride.id, b.id, 1)
        rejected = await manager.create_booking(ride.id, c.id, 1)
        await manager.reject_booking(rejected.id)

        ride, cancelled = await RideService(db_session, notifier).cancel_ride(
            ride.id, actor_id=driver.id
        )
        assert cancelled == 2
        assert ride.status == RideStatus.CANCELLED
        assert ride.seats_available == 4

        for booking in (paid, pending, rejected):
            await db_session.refresh(booking)
            assert booking.status == BookingStatus.CANCELLED
        assert rejected.approval_status == ApprovalStatus.REJECTED
        assert notifier.names() == ["ride_cancellation"]

    @pytest.mark.asyncio
    async def test_cancel_terminal_ride_fails(self, db_session, factory):
        driver = await factory.user(is_driver=True)
        ride = await factory.ride(driver, status=RideStatus.COMPLETED)
        with pytest.raises(InvalidRideState):
            await RideService(db_session).cancel_ride(ride.id)

    @pytest.mark.asyncio
    async def test_complete_ride_by_driver(self, db_session, factory):
        driver = await factory.user(is_driver=True)
        a, b = await factory.user(), await factory.user()
        ride = await factory.ride(driver, seats_total=4)
        manager = BookingLifecycleManager(db_session)

        paid = await _paid(manager, ride, a, 2)
        pending = await manager.create_booking(ride.id, b.id, 1)

        ride, completed = await RideService(db_session).complete_ride(
            ride.id, actor_id=driver.id
        )
        assert completed == 1
        assert ride.status == RideStatus.COMPLETED
        assert ride.completed_at is not None
        assert ride.auto_completed is False

        await db_session.refresh(paid)
        await db_session.refresh(pending)
        assert paid.status == BookingStatus.COMPLETED
        assert paid.completed_at is not None
        assert pending.status == BookingStatus.PENDING

    @pytest.mark.asyncio
    async def test_complete_ride_by_other_user_forbidden(self, db_session, factory):
        driver = await factory.user(is_driver=True)
        other = await factory.user(is_driver=True)
        ride = await factory.ride(driver)
        with pytest.raises(Forbidden):
            await RideService(db_session).complete_ride(ride.id, actor_id=other.id)
