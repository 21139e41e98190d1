"""
SQLAlchemy implementations of the repository contract.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.  Rows are mapped to domain dataclasses on
the way out, and integer primary keys are turned into the opaque string
ids the domain uses.  ``SQLAlchemyError`` is re-raised as
``StorageError``; committing or rolling back is the caller's job.
"""

from __future__ import annotations

import functools
import math
from typing import Any, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .models import CabTypeModel, DriverModel, TripModel, UserModel
from ridequick.domain.entities import (
    CabType,
    Coordinate,
    Driver,
    EntityId,
    Trip,
    User,
    as_utc,
)
from ridequick.domain.enums import TripStatus
from ridequick.domain.exceptions import DriverUnavailable, InvalidInput, StorageError
from ridequick.domain.geo import EARTH_RADIUS_KM, haversine_km
from ridequick.domain.repositories import (
    CabTypeRepository,
    DriverRepository,
    Storage,
    TripRepository,
    UserRepository,
)

TRIP_MUTABLE_FIELDS = frozenset({"status", "driver_id", "start_time", "end_time"})
KM_PER_DEGREE = math.pi * EARTH_RADIUS_KM / 180


def _translate_errors(method):
    @functools.wraps(method)
    async def wrapper(*args, **kwargs):
        try:
            return await method(*args, **kwargs)
        except SQLAlchemyError as exc:
            raise StorageError(f"{method.__qualname__} failed: {exc}") from exc

    return wrapper


def _pk(entity_id: Optional[EntityId]) -> Optional[int]:
    """Opaque id -> integer key; ``None`` for ids this store never issued."""
    try:
        return int(entity_id)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None


def _id(pk: Optional[int]) -> Optional[EntityId]:
    return None if pk is None else str(pk)


# ── Row mappers ───────────────────────────────────────────────────────


def _user(row: UserModel) -> User:
    return User(
        id=_id(row.id),
        username=row.username,
        email=row.email,
        full_name=row.full_name,
        phone=row.phone,
        created_at=as_utc(row.created_at),
    )


def _driver(row: DriverModel) -> Driver:
    return Driver(
        id=_id(row.id),
        full_name=row.full_name,
        phone=row.phone,
        license_plate=row.license_plate,
        car_model=row.car_model,
        rating=row.rating,
        is_available=row.is_available,
        current_location=Coordinate(row.current_lat, row.current_lng),
        created_at=as_utc(row.created_at),
    )


def _cab_type(row: CabTypeModel) -> CabType:
    return CabType(
        id=_id(row.id),
        name=row.name,
        description=row.description,
        base_price=row.base_price,
        price_per_km=row.price_per_km,
        seating_capacity=row.seating_capacity,
    )


def _trip(row: TripModel) -> Trip:
    return Trip(
        id=_id(row.id),
        user_id=_id(row.user_id),
        driver_id=_id(row.driver_id),
        cab_type_id=_id(row.cab_type_id),
        pickup_location=Coordinate(row.pickup_lat, row.pickup_lng),
        destination_location=Coordinate(row.destination_lat, row.destination_lng),
        pickup_address=row.pickup_address,
        destination_address=row.destination_address,
        distance=row.distance,
        price=row.price,
        status=TripStatus(row.status),
        start_time=as_utc(row.start_time),
        end_time=as_utc(row.end_time),
        created_at=as_utc(row.created_at),
    )


# ── Repositories ──────────────────────────────────────────────────────


class SqlUserRepository(UserRepository):
    def __init__(self, session: AsyncSession):
        self.session = session

    @_translate_errors
    async def get(self, user_id: EntityId) -> Optional[User]:
        pk = _pk(user_id)
        row = await self.session.get(UserModel, pk) if pk is not None else None
        return _user(row) if row else None

    @_translate_errors
    async def get_by_username(self, username: str) -> Optional[User]:
        result = await self.session.execute(
            select(UserModel).where(func.lower(UserModel.username) == username.lower())
        )
        row = result.scalars().first()
        return _user(row) if row else None

    @_translate_errors
    async def create(self, user: User) -> User:
        row = UserModel(
            username=user.username,
            email=user.email,
            full_name=user.full_name,
            phone=user.phone,
        )
        self.session.add(row)
        await self.session.flush()
        return _user(row)


class SqlDriverRepository(DriverRepository):
    def __init__(self, session: AsyncSession):
        self.session = session

    @_translate_errors
    async def get(self, driver_id: EntityId) -> Optional[Driver]:
        pk = _pk(driver_id)
        row = await self.session.get(DriverModel, pk) if pk is not None else None
        return _driver(row) if row else None

    @_translate_errors
    async def create(self, driver: Driver) -> Driver:
        row = DriverModel(
            full_name=driver.full_name,
            phone=driver.phone,
            license_plate=driver.license_plate,
            car_model=driver.car_model,
            rating=driver.rating,
            is_available=driver.is_available,
            current_lat=driver.current_location.latitude,
            current_lng=driver.current_location.longitude,
        )
        self.session.add(row)
        await self.session.flush()
        return _driver(row)

    @_translate_errors
    async def list_all_available(self) -> list[Driver]:
        result = await self.session.execute(
            select(DriverModel)
            .where(DriverModel.is_available.is_(True))
            .order_by(DriverModel.id)
        )
        return [_driver(row) for row in result.scalars().all()]

    @_translate_errors
    async def find_available_within(
        self, location: Coordinate, radius_km: float
    ) -> list[Driver]:
        """
        Bounding-box prefilter in SQL, exact haversine check in Python.

        The longitude band is skipped near the poles and when the box
        would wrap the antimeridian, where a plain BETWEEN is wrong.
        """
        dlat = radius_km / KM_PER_DEGREE
        query = (
            select(DriverModel)
            .where(DriverModel.is_available.is_(True))
            .where(
                DriverModel.current_lat.between(
                    location.latitude - dlat, location.latitude + dlat
                )
            )
            .order_by(DriverModel.id)
        )
        # Widest longitude span is at the poleward edge of the box.
        edge_lat = min(90.0, abs(location.latitude) + dlat)
        cos_lat = math.cos(math.radians(edge_lat))
        if cos_lat > 1e-6:
            dlng = radius_km / (KM_PER_DEGREE * cos_lat)
            if -180 <= location.longitude - dlng and location.longitude + dlng <= 180:
                query = query.where(
                    DriverModel.current_lng.between(
                        location.longitude - dlng, location.longitude + dlng
                    )
                )

        result = await self.session.execute(query)
        drivers = [_driver(row) for row in result.scalars().all()]
        return [
            d for d in drivers if haversine_km(location, d.current_location) <= radius_km
        ]

    @_translate_errors
    async def set_availability(
        self,
        driver_id: EntityId,
        is_available: bool,
        expected: Optional[bool] = None,
    ) -> Optional[Driver]:
        pk = _pk(driver_id)
        if pk is None:
            return None

        stmt = (
            update(DriverModel)
            .where(DriverModel.id == pk)
            .values(is_available=is_available)
        )
        if expected is not None:
            # Compare-and-set: the row only changes if nobody beat us to it.
            stmt = stmt.where(DriverModel.is_available.is_(expected))
        result = await self.session.execute(
            stmt.execution_options(synchronize_session=False)
        )

        row = await self.session.get(DriverModel, pk, populate_existing=True)
        if row is None:
            return None
        if result.rowcount == 0:
            raise DriverUnavailable(driver_id)
        return _driver(row)

    @_translate_errors
    async def update_location(
        self, driver_id: EntityId, location: Coordinate
    ) -> Optional[Driver]:
        pk = _pk(driver_id)
        row = await self.session.get(DriverModel, pk) if pk is not None else None
        if row is None:
            return None
        row.current_lat = location.latitude
        row.current_lng = location.longitude
        await self.session.flush()
        return _driver(row)


class SqlCabTypeRepository(CabTypeRepository):
    def __init__(self, session: AsyncSession):
        self.session = session

    @_translate_errors
    async def get(self, cab_type_id: EntityId) -> Optional[CabType]:
        pk = _pk(cab_type_id)
        row = await self.session.get(CabTypeModel, pk) if pk is not None else None
        return _cab_type(row) if row else None

    @_translate_errors
    async def list_all(self) -> list[CabType]:
        result = await self.session.execute(
            select(CabTypeModel).order_by(CabTypeModel.id)
        )
        return [_cab_type(row) for row in result.scalars().all()]

    @_translate_errors
    async def create(self, cab_type: CabType) -> CabType:
        row = CabTypeModel(
            name=cab_type.name,
            description=cab_type.description,
            base_price=cab_type.base_price,
            price_per_km=cab_type.price_per_km,
            seating_capacity=cab_type.seating_capacity,
        )
        self.session.add(row)
        await self.session.flush()
        return _cab_type(row)


class SqlTripRepository(TripRepository):
    def __init__(self, session: AsyncSession):
        self.session = session

    @_translate_errors
    async def get(
        self, trip_id: EntityId, for_update: bool = False
    ) -> Optional[Trip]:
        """``for_update`` takes a row lock (SELECT ... FOR UPDATE)."""
        row = await self._row(trip_id, for_update=for_update)
        return _trip(row) if row else None

    @_translate_errors
    async def list_by_owner(self, user_id: EntityId) -> list[Trip]:
        pk = _pk(user_id)
        if pk is None:
            return []
        result = await self.session.execute(
            select(TripModel)
            .where(TripModel.user_id == pk)
            .order_by(TripModel.created_at.desc(), TripModel.id.desc())
        )
        return [_trip(row) for row in result.scalars().all()]

    @_translate_errors
    async def list_by_driver(self, driver_id: EntityId) -> list[Trip]:
        pk = _pk(driver_id)
        if pk is None:
            return []
        result = await self.session.execute(
            select(TripModel)
            .where(TripModel.driver_id == pk)
            .order_by(TripModel.created_at.desc(), TripModel.id.desc())
        )
        return [_trip(row) for row in result.scalars().all()]

    @_translate_errors
    async def create(self, trip: Trip) -> Trip:
        user_pk, cab_type_pk = _pk(trip.user_id), _pk(trip.cab_type_id)
        if user_pk is None or cab_type_pk is None:
            raise InvalidInput("Trip references an id this store never issued")
        row = TripModel(
            user_id=user_pk,
            driver_id=_pk(trip.driver_id),
            cab_type_id=cab_type_pk,
            pickup_lat=trip.pickup_location.latitude,
            pickup_lng=trip.pickup_location.longitude,
            destination_lat=trip.destination_location.latitude,
            destination_lng=trip.destination_location.longitude,
            pickup_address=trip.pickup_address,
            destination_address=trip.destination_address,
            distance=trip.distance,
            price=trip.price,
            status=trip.status,
            start_time=trip.start_time,
            end_time=trip.end_time,
        )
        self.session.add(row)
        await self.session.flush()
        return _trip(row)

    @_translate_errors
    async def update(self, trip_id: EntityId, **fields: Any) -> Optional[Trip]:
        unknown = set(fields) - TRIP_MUTABLE_FIELDS
        if unknown:
            raise InvalidInput(f"Immutable trip fields: {', '.join(sorted(unknown))}")
        row = await self._row(trip_id)
        if row is None:
            return None
        for name, value in fields.items():
            setattr(row, name, _pk(value) if name == "driver_id" else value)
        await self.session.flush()
        return _trip(row)

    async def _row(
        self, trip_id: EntityId, for_update: bool = False
    ) -> Optional[TripModel]:
        pk = _pk(trip_id)
        if pk is None:
            return None
        query = select(TripModel).where(TripModel.id == pk)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(
            query.execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()


def build_sql_storage(session: AsyncSession) -> Storage:
    return Storage(
        users=SqlUserRepository(session),
        drivers=SqlDriverRepository(session),
        cab_types=SqlCabTypeRepository(session),
        trips=SqlTripRepository(session),
    )
