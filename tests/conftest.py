"""
Shared test fixtures.

Most tests run against the in-memory repositories.  SQL tests use an
in-memory SQLite database (via aiosqlite) with the production models, so
no Docker / PostgreSQL / Redis is needed.
"""

import random
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.pool import StaticPool

from ridequick.domain.entities import CabType, Coordinate, Driver, User
from ridequick.domain.repositories import Storage
from ridequick.infrastructure.database import Base, build_engine, build_session_factory
from ridequick.infrastructure.locks import LocalLockManager
from ridequick.infrastructure.memory import build_memory_storage
from ridequick.infrastructure.repositories import build_sql_storage
from ridequick.services.driver_registry import DriverRegistry
from ridequick.services.trip_manager import TripLifecycleManager, TripRequest

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"

# Times Square and JFK, roughly 21 km apart.
MIDTOWN = Coordinate(40.7580, -73.9855)
JFK = Coordinate(40.6413, -73.7781)


def offset(origin: Coordinate, dlat: float = 0.0, dlng: float = 0.0) -> Coordinate:
    return Coordinate(origin.latitude + dlat, origin.longitude + dlng)


def trip_request(
    cab_type_id: str,
    pickup: Coordinate = MIDTOWN,
    destination: Coordinate = JFK,
) -> TripRequest:
    return TripRequest(
        cab_type_id=cab_type_id,
        pickup=pickup,
        destination=destination,
        pickup_address="Times Square",
        destination_address="JFK Terminal 4",
    )


async def add_driver(
    registry: DriverRegistry, location: Coordinate, name: str = "Driver"
) -> Driver:
    return await registry.register(
        full_name=name,
        phone="555-0100",
        license_plate=f"NY-{name}",
        car_model="Toyota Camry",
        location=location,
        rating=4.8,
    )


# ── In-memory fixtures ────────────────────────────────────────────────


@pytest.fixture
def rng() -> random.Random:
    return random.Random(42)


@pytest.fixture
def storage() -> Storage:
    return build_memory_storage()


@pytest.fixture
def registry(storage: Storage, rng: random.Random) -> DriverRegistry:
    return DriverRegistry(storage.drivers, rng=rng)


@pytest.fixture
def manager(
    storage: Storage, registry: DriverRegistry, rng: random.Random
) -> TripLifecycleManager:
    return TripLifecycleManager(
        storage, registry, LocalLockManager(timeout=1.0), rng=rng
    )


@pytest_asyncio.fixture
async def rider(storage: Storage) -> User:
    return await storage.users.create(
        User(username="alice", email="alice@example.com", full_name="Alice Rider")
    )


@pytest_asyncio.fixture
async def other_rider(storage: Storage) -> User:
    return await storage.users.create(
        User(username="bob", email="bob@example.com", full_name="Bob Rider")
    )


@pytest_asyncio.fixture
async def standard(storage: Storage) -> CabType:
    return await storage.cab_types.create(
        CabType(name="Standard", base_price=5.0, price_per_km=1.5, seating_capacity=4)
    )


# ── SQL fixtures ──────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create tables, yield a session, then drop everything."""
    engine = build_engine(TEST_DB_URL, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with build_session_factory(engine)() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def sql_storage(db_session: AsyncSession) -> Storage:
    return build_sql_storage(db_session)
