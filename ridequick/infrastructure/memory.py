"""
In-memory repositories.

Records live in insertion-ordered dicts, which gives registration order
for free.  Entities are copied on the way in and out so callers never
hold a reference into the store.  The driver store guards its
compare-and-set with an ``asyncio.Lock``.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import replace
from typing import Any, Optional

from ridequick.domain.entities import (
    CabType,
    Coordinate,
    Driver,
    EntityId,
    Trip,
    User,
    utcnow,
)
from ridequick.domain.exceptions import DriverUnavailable, InvalidInput
from ridequick.domain.geo import haversine_km
from ridequick.domain.repositories import (
    CabTypeRepository,
    DriverRepository,
    Storage,
    TripRepository,
    UserRepository,
)

TRIP_MUTABLE_FIELDS = frozenset({"status", "driver_id", "start_time", "end_time"})


def _new_id() -> EntityId:
    return uuid.uuid4().hex


class InMemoryUserRepository(UserRepository):
    def __init__(self) -> None:
        self._users: dict[EntityId, User] = {}

    async def get(self, user_id: EntityId) -> Optional[User]:
        user = self._users.get(user_id)
        return replace(user) if user else None

    async def get_by_username(self, username: str) -> Optional[User]:
        for user in self._users.values():
            if user.username.lower() == username.lower():
                return replace(user)
        return None

    async def create(self, user: User) -> User:
        stored = replace(user, id=_new_id(), created_at=utcnow())
        self._users[stored.id] = stored
        return replace(stored)


class InMemoryDriverRepository(DriverRepository):
    def __init__(self) -> None:
        self._drivers: dict[EntityId, Driver] = {}
        self._lock = asyncio.Lock()

    async def get(self, driver_id: EntityId) -> Optional[Driver]:
        driver = self._drivers.get(driver_id)
        return replace(driver) if driver else None

    async def create(self, driver: Driver) -> Driver:
        stored = replace(driver, id=_new_id(), created_at=utcnow())
        self._drivers[stored.id] = stored
        return replace(stored)

    async def list_all_available(self) -> list[Driver]:
        return [replace(d) for d in self._drivers.values() if d.is_available]

    async def find_available_within(
        self, location: Coordinate, radius_km: float
    ) -> list[Driver]:
        return [
            replace(d)
            for d in self._drivers.values()
            if d.is_available
            and haversine_km(location, d.current_location) <= radius_km
        ]

    async def set_availability(
        self,
        driver_id: EntityId,
        is_available: bool,
        expected: Optional[bool] = None,
    ) -> Optional[Driver]:
        async with self._lock:
            driver = self._drivers.get(driver_id)
            if driver is None:
                return None
            if expected is not None and driver.is_available != expected:
                raise DriverUnavailable(driver_id)
            driver.is_available = is_available
            return replace(driver)

    async def update_location(
        self, driver_id: EntityId, location: Coordinate
    ) -> Optional[Driver]:
        async with self._lock:
            driver = self._drivers.get(driver_id)
            if driver is None:
                return None
            driver.current_location = location
            return replace(driver)


class InMemoryCabTypeRepository(CabTypeRepository):
    def __init__(self) -> None:
        self._cab_types: dict[EntityId, CabType] = {}

    async def get(self, cab_type_id: EntityId) -> Optional[CabType]:
        return self._cab_types.get(cab_type_id)

    async def list_all(self) -> list[CabType]:
        return list(self._cab_types.values())

    async def create(self, cab_type: CabType) -> CabType:
        # CabType is frozen, so sharing the stored instance is safe.
        stored = replace(cab_type, id=_new_id())
        self._cab_types[stored.id] = stored
        return stored


class InMemoryTripRepository(TripRepository):
    def __init__(self) -> None:
        self._trips: dict[EntityId, Trip] = {}

    async def get(
        self, trip_id: EntityId, for_update: bool = False
    ) -> Optional[Trip]:
        trip = self._trips.get(trip_id)
        return replace(trip) if trip else None

    async def list_by_owner(self, user_id: EntityId) -> list[Trip]:
        return self._newest_first(t for t in self._trips.values() if t.user_id == user_id)

    async def list_by_driver(self, driver_id: EntityId) -> list[Trip]:
        return self._newest_first(
            t for t in self._trips.values() if t.driver_id == driver_id
        )

    async def create(self, trip: Trip) -> Trip:
        stored = replace(trip, id=_new_id(), created_at=utcnow())
        self._trips[stored.id] = stored
        return replace(stored)

    async def update(self, trip_id: EntityId, **fields: Any) -> Optional[Trip]:
        unknown = set(fields) - TRIP_MUTABLE_FIELDS
        if unknown:
            raise InvalidInput(f"Immutable trip fields: {', '.join(sorted(unknown))}")
        trip = self._trips.get(trip_id)
        if trip is None:
            return None
        updated = replace(trip, **fields)
        self._trips[trip_id] = updated
        return replace(updated)

    @staticmethod
    def _newest_first(trips) -> list[Trip]:
        # Reversed insertion order breaks created_at ties (same clock tick).
        ordered = list(reversed(list(trips)))
        ordered.sort(key=lambda t: t.created_at, reverse=True)
        return [replace(t) for t in ordered]


def build_memory_storage() -> Storage:
    return Storage(
        users=InMemoryUserRepository(),
        drivers=InMemoryDriverRepository(),
        cab_types=InMemoryCabTypeRepository(),
        trips=InMemoryTripRepository(),
    )
