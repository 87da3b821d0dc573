"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - 8 sample rides on popular Côte d'Ivoire routes, departing over the
    next few days
  - a handful of bookings (pending and confirmed) through the booking
    engine, so capacity rules apply exactly as they do for real traffic
"""

import asyncio
from datetime import timedelta

from sqlalchemy import text

from rideshare.config import settings
from rideshare.domain.clock import utcnow
from rideshare.infrastructure.database import async_session_factory, engine
from rideshare.services.marketplace import RideMarketplace

DRIVERS = ["driver-kouassi", "driver-traore", "driver-bamba", "driver-yao"]
PASSENGERS = ["passenger-aya", "passenger-koffi", "passenger-mariam", "passenger-ibrahim"]

RIDES = [
    # (driver index, origin, destination, hours from now, seats, price FCFA)
    (0, "Abidjan", "Bouaké", 20, 3, 5000),
    (0, "Bouaké", "Abidjan", 68, 3, 5000),
    (1, "Abidjan", "Yamoussoukro", 26, 4, 3500),
    (1, "Abidjan", "San-Pédro", 30, 2, 6000),
    (2, "Bouaké", "Korhogo", 44, 5, 4000),
    (2, "Yamoussoukro", "Bouaké", 50, 4, 2500),
    (3, "Abidjan", "Daloa", 36, 6, 4500),
    (3, "Abidjan", "Bouaké", 72, 8, 4800),
]


async def seed():
    async with async_session_factory() as session:
        # Check if already seeded
        result = await session.execute(text("SELECT count(*) FROM rides"))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return

    marketplace = RideMarketplace.from_settings(async_session_factory, settings)
    now = utcnow()

    # ── Rides ─────────────────────────────────────────────────────────
    rides = []
    for driver, origin, destination, hours, seats, price in RIDES:
        ride = await marketplace.create_ride(
            DRIVERS[driver],
            origin,
            destination,
            now + timedelta(hours=hours),
            seats,
            price,
            description=f"Départ {origin}, arrivée {destination}.",
        )
        rides.append(ride)
    print(f"  Created {len(rides)} rides")

    # ── Bookings ──────────────────────────────────────────────────────
    bookings = [
        (rides[0], PASSENGERS[0], 2),
        (rides[0], PASSENGERS[1], 1),  # fills Abidjan -> Bouaké
        (rides[2], PASSENGERS[2], 2),
        (rides[4], PASSENGERS[3], 3),
        (rides[6], PASSENGERS[0], 1),
    ]
    for ride, passenger, seats in bookings:
        booking = await marketplace.request_booking(ride.id, passenger, seats)
        if ride.id == rides[2].id:
            await marketplace.confirm_booking(booking.id, ride.owner_id)
    print(f"  Created {len(bookings)} bookings")

    print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
