"""
Reference data and demo fixtures.

Creates the three default cab types and five drivers scattered within
~1 km of each of five cities, plus one demo rider.  Used by ``seed.py``
for the SQL backend and by the app factory for the in-memory backend.
"""

from __future__ import annotations

import logging
import random

from ridequick.domain.entities import CabType, Coordinate, User
from ridequick.domain.repositories import Storage
from ridequick.services.driver_registry import DriverRegistry

logger = logging.getLogger(__name__)

CAB_TYPES = [
    CabType(
        name="Standard",
        description="4 seats, standard comfort",
        base_price=5.0,
        price_per_km=1.5,
        seating_capacity=4,
    ),
    CabType(
        name="Premium",
        description="4 seats, premium features",
        base_price=8.0,
        price_per_km=2.25,
        seating_capacity=4,
    ),
    CabType(
        name="SUV",
        description="6 seats, spacious",
        base_price=10.0,
        price_per_km=3.0,
        seating_capacity=6,
    ),
]

CITIES = [
    ("NYC", 40.7128, -74.0060),
    ("Anand", 22.5967198, 72.8345504),
    ("London", 51.5074, -0.1278),
    ("Tokyo", 35.6762, 139.6503),
    ("Sydney", -33.8688, 151.2093),
]
DRIVERS_PER_CITY = 5
CAR_MODELS = ["Toyota Camry", "Honda Accord", "Ford Explorer"]

DEMO_USER = User(
    username="demo",
    email="demo@ridequick.example",
    full_name="Demo Rider",
)


async def seed_storage(storage: Storage, rng: random.Random) -> User:
    """Populate an empty store.  Returns the demo rider."""
    existing = await storage.users.get_by_username(DEMO_USER.username)
    if existing is not None:
        logger.info("Storage already seeded; skipping")
        return existing

    for cab_type in CAB_TYPES:
        await storage.cab_types.create(cab_type)

    registry = DriverRegistry(storage.drivers, rng=rng)
    for city_index, (_, lat, lng) in enumerate(CITIES):
        for i in range(DRIVERS_PER_CITY):
            n = city_index * DRIVERS_PER_CITY + i
            await registry.register(
                full_name=f"Driver {n + 1}",
                phone=f"555-{1000 + n}",
                license_plate=f"ABC{1000 + n}",
                car_model=CAR_MODELS[n % len(CAR_MODELS)],
                location=Coordinate(
                    lat + rng.uniform(-0.01, 0.01),
                    lng + rng.uniform(-0.01, 0.01),
                ),
            )

    user = await storage.users.create(DEMO_USER)
    logger.info(
        "Seeded %d cab types, %d drivers and demo user %s",
        len(CAB_TYPES),
        len(CITIES) * DRIVERS_PER_CITY,
        user.id,
    )
    return user
