"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - 3 drivers and 5 riders
  - 4 rides: two upcoming, one stale with a paid booking (auto-completes on
    the next sweep) and one stale with only a pending request (expires)
  - bookings across every non-terminal state
Cached availability is derived with the recalculator, never hand-set.
"""

import asyncio
from datetime import timedelta

from sqlalchemy import text

from src.domain.entities import utcnow
from src.domain.enums import ApprovalStatus, BookingStatus, RideStatus
from src.infrastructure.database import async_session_factory, engine
from src.infrastructure.models import BookingModel, RideModel, UserModel
from src.services.recalculator import AvailabilityRecalculator


DRIVERS = [
    {"name": "Maya Okafor", "email": "maya@example.com", "rating_driver": 4.9},
    {"name": "Tomas Lindqvist", "email": "tomas@example.com", "rating_driver": 4.7},
    {"name": "Priya Raman", "email": "priya@example.com", "rating_driver": 4.8},
]

RIDERS = [
    {"name": "Jonah Weiss", "email": "jonah@example.com"},
    {"name": "Aiko Tanaka", "email": "aiko@example.com"},
    {"name": "Luis Moreno", "email": "luis@example.com"},
    {"name": "Fatima Haddad", "email": "fatima@example.com"},
    {"name": "Ben Carter", "email": "ben@example.com"},
]


async def seed():
    async with async_session_factory() as session:
        # Check if already seeded
        result = await session.execute(text("SELECT count(*) FROM users"))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return

        # ── Users ─────────────────────────────────────────────────────
        drivers = [UserModel(is_driver=True, **d) for d in DRIVERS]
        riders = [UserModel(is_driver=False, **r) for r in RIDERS]
        session.add_all(drivers + riders)
        await session.flush()
        print(f"  Created {len(drivers)} drivers and {len(riders)} riders")

        # ── Rides ─────────────────────────────────────────────────────
        now = utcnow()
        rides_data = [
            ("Downtown", "Airport", drivers[0], 4, now + timedelta(days=1), 18.0),
            ("University", "Lakeside", drivers[1], 3, now + timedelta(hours=6), 9.5),
            ("Harbour", "Old Town", drivers[2], 2, now - timedelta(hours=5), 12.0),
            ("Station", "Stadium", drivers[0], 4, now - timedelta(hours=3), 7.0),
        ]
        rides = []
        for origin, destination, driver, seats, departure, price in rides_data:
            ride = RideModel(
                driver_id=driver.id,
                origin_label=origin,
                destination_label=destination,
                seats_total=seats,
                seats_available=seats,
                status=RideStatus.OPEN,
                departure_time=departure,
                price=price,
                currency="USD",
            )
            session.add(ride)
            rides.append(ride)
        await session.flush()
        print(f"  Created {len(rides)} rides")

        # ── Bookings ──────────────────────────────────────────────────
        bookings_data = [
            (rides[0], riders[0], 2, BookingStatus.PAID, ApprovalStatus.APPROVED),
            (rides[0], riders[1], 1, BookingStatus.PENDING, ApprovalStatus.APPROVED),
            (rides[0], riders[2], 1, BookingStatus.PENDING, ApprovalStatus.PENDING),
            (rides[1], riders[3], 3, BookingStatus.PAID, ApprovalStatus.APPROVED),
            (rides[2], riders[4], 1, BookingStatus.PAID, ApprovalStatus.APPROVED),
            (rides[3], riders[0], 2, BookingStatus.PENDING, ApprovalStatus.PENDING),
        ]
        for ride, rider, seats, status, approval in bookings_data:
            session.add(
                BookingModel(
                    ride_id=ride.id,
                    rider_id=rider.id,
                    seats_booked=seats,
                    status=status,
                    approval_status=approval,
                    price_per_seat=ride.price,
                    total_price=round(seats * ride.price, 2),
                    currency=ride.currency,
                    payment_intent_ref=(
                        f"pi_seed_{ride.id}_{rider.id}"
                        if status == BookingStatus.PAID
                        else None
                    ),
                )
            )
        await session.flush()
        print(f"  Created {len(bookings_data)} bookings")

        # ── Derived availability ──────────────────────────────────────
        recalculator = AvailabilityRecalculator(session)
        for ride in rides:
            await recalculator.recompute_ride(ride)

        await session.commit()
        print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
