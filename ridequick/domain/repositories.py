"""
Repository Pattern -- the storage contract the services depend on.

Two implementations live in ``ridequick.infrastructure``:

* ``memory``       -- dict-backed, process-local (tests, demos)
* ``repositories`` -- async SQLAlchemy (PostgreSQL in production)

Conventions
-----------
* Lookups return ``None`` when the id does not resolve; list queries
  return ``[]`` when nothing matches.
* Every method may perform I/O and is therefore ``async``.
* Backend failures are raised as ``StorageError``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from .entities import CabType, Coordinate, Driver, EntityId, Trip, User


class UserRepository(ABC):
    @abstractmethod
    async def get(self, user_id: EntityId) -> Optional[User]: ...

    @abstractmethod
    async def get_by_username(self, username: str) -> Optional[User]: ...

    @abstractmethod
    async def create(self, user: User) -> User: ...


class DriverRepository(ABC):
    @abstractmethod
    async def get(self, driver_id: EntityId) -> Optional[Driver]: ...

    @abstractmethod
    async def create(self, driver: Driver) -> Driver: ...

    @abstractmethod
    async def list_all_available(self) -> list[Driver]:
        """Available drivers in registration order."""

    @abstractmethod
    async def find_available_within(
        self, location: Coordinate, radius_km: float
    ) -> list[Driver]:
        """Available drivers within *radius_km*, in registration order."""

    @abstractmethod
    async def set_availability(
        self,
        driver_id: EntityId,
        is_available: bool,
        expected: Optional[bool] = None,
    ) -> Optional[Driver]:
        """
        Set the availability flag and return the updated driver.

        With *expected* given the write is a compare-and-set: it only
        happens if the stored flag equals *expected*, otherwise
        ``DriverUnavailable`` is raised.
        """

    @abstractmethod
    async def update_location(
        self, driver_id: EntityId, location: Coordinate
    ) -> Optional[Driver]: ...


class CabTypeRepository(ABC):
    @abstractmethod
    async def get(self, cab_type_id: EntityId) -> Optional[CabType]: ...

    @abstractmethod
    async def list_all(self) -> list[CabType]: ...

    @abstractmethod
    async def create(self, cab_type: CabType) -> CabType: ...


class TripRepository(ABC):
    @abstractmethod
    async def get(
        self, trip_id: EntityId, for_update: bool = False
    ) -> Optional[Trip]: ...

    @abstractmethod
    async def list_by_owner(self, user_id: EntityId) -> list[Trip]:
        """Trips created by *user_id*, newest first."""

    @abstractmethod
    async def list_by_driver(self, driver_id: EntityId) -> list[Trip]:
        """Trips served by *driver_id*, newest first."""

    @abstractmethod
    async def create(self, trip: Trip) -> Trip: ...

    @abstractmethod
    async def update(self, trip_id: EntityId, **fields: Any) -> Optional[Trip]:
        """Apply *fields* (status, driver_id, start_time, end_time)."""


@dataclass
class Storage:
    """The set of repositories one unit of work operates on."""

    users: UserRepository
    drivers: DriverRepository
    cab_types: CabTypeRepository
    trips: TripRepository
