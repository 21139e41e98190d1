"""
Trip Lifecycle Manager
======================

Owns trip records and drives them through the status state machine,
reserving and releasing drivers as side effects:

* ``create_trip``   -- price the trip, persist it PENDING, auto-assign.
* ``start_trip``    -- CONFIRMED (or PENDING with a driver) -> IN_PROGRESS.
* ``complete_trip`` -- CONFIRMED | IN_PROGRESS -> COMPLETED, driver freed
  and moved to the destination.
* ``cancel_trip``   -- any active state -> CANCELLED, driver freed in place.
* ``update_trip_status`` -- generic patch, dispatched onto the above.

Auto-assignment
---------------
Candidates come from ``find_nearby(pickup, 5 km)``, then 10 km, then any
available driver.  They are tried in order; a candidate lost to a
concurrent reservation is skipped.  With no driver at all a new trip simply
stays PENDING; an explicit confirm raises ``NoDriverAvailable`` instead.

Consistency
-----------
Every transition runs under the per-trip lock.  Reserve + confirm is
guarded by a compensating release: if the trip cannot be confirmed after
the driver was reserved, the driver is released before the error
propagates.  A failing release is never swallowed.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Mapping, Optional

from ridequick.domain.entities import (
    Coordinate,
    Driver,
    EntityId,
    Trip,
    as_utc,
    utcnow,
)
from ridequick.domain.enums import TripStatus
from ridequick.domain.exceptions import (
    DriverUnavailable,
    InvalidInput,
    InvalidTransition,
    NoDriverAvailable,
    NotFound,
    Unauthorized,
)
from ridequick.domain.geo import (
    AVERAGE_SPEED_KMH,
    estimate_travel_time,
    haversine_km,
    jitter,
)
from ridequick.domain.pricing import PricingEngine, round2
from ridequick.domain.repositories import Storage
from ridequick.infrastructure.locks import LockManager
from ridequick.services.driver_registry import DriverRegistry

logger = logging.getLogger(__name__)


# ── Requests ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TripRequest:
    cab_type_id: EntityId
    pickup: Coordinate
    destination: Coordinate
    pickup_address: str
    destination_address: str


@dataclass(frozen=True)
class TripUpdate:
    """The only trip fields a caller may change after creation."""

    status: Optional[TripStatus] = None
    driver_id: Optional[EntityId] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "TripUpdate":
        unknown = set(data) - {"status", "driver_id", "start_time", "end_time"}
        if unknown:
            raise InvalidInput(
                f"Trip fields cannot be changed: {', '.join(sorted(unknown))}"
            )
        status = data.get("status")
        try:
            status = TripStatus(status) if status is not None else None
        except ValueError:
            raise InvalidInput(f"Unknown trip status {status!r}") from None
        return cls(
            status=status,
            driver_id=data.get("driver_id"),
            start_time=data.get("start_time"),
            end_time=data.get("end_time"),
        )


@dataclass(frozen=True)
class TripQuote:
    distance: float
    price: float
    duration_minutes: int


def _trip_key(trip_id: EntityId) -> str:
    return f"trip:{trip_id}"


def _stamps(
    start_time: Optional[datetime] = None, end_time: Optional[datetime] = None
) -> dict[str, datetime]:
    stamps = {}
    if start_time is not None:
        stamps["start_time"] = as_utc(start_time)
    if end_time is not None:
        stamps["end_time"] = as_utc(end_time)
    return stamps


# ── Manager ───────────────────────────────────────────────────────────


class TripLifecycleManager:
    def __init__(
        self,
        storage: Storage,
        registry: DriverRegistry,
        locks: LockManager,
        pricing: Optional[PricingEngine] = None,
        rng: Optional[random.Random] = None,
        nearby_radius_km: float = 5.0,
        extended_radius_km: float = 10.0,
        arrival_jitter_deg: float = 0.001,
        average_speed_kmh: float = AVERAGE_SPEED_KMH,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.storage = storage
        self.registry = registry
        self.locks = locks
        self.pricing = pricing or PricingEngine()
        self.rng = rng or random.Random()
        self.nearby_radius_km = nearby_radius_km
        self.extended_radius_km = extended_radius_km
        self.arrival_jitter_deg = arrival_jitter_deg
        self.average_speed_kmh = average_speed_kmh
        self.clock = clock

    # ── Queries ───────────────────────────────────────────────────

    async def quote(self, request: TripRequest) -> TripQuote:
        """Distance, fare and travel time for a trip without booking it."""
        cab_type = await self.storage.cab_types.get(request.cab_type_id)
        if cab_type is None:
            raise NotFound("Cab type", request.cab_type_id)
        distance = round2(haversine_km(request.pickup, request.destination))
        return TripQuote(
            distance=distance,
            price=self.pricing.calculate_fare(distance, cab_type),
            duration_minutes=estimate_travel_time(distance, self.average_speed_kmh),
        )

    async def get_trip(self, trip_id: EntityId, user_id: EntityId) -> Trip:
        return await self._owned(trip_id, user_id)

    async def list_trips_for_user(self, user_id: EntityId) -> list[Trip]:
        return await self.storage.trips.list_by_owner(user_id)

    async def list_trips_for_driver(self, driver_id: EntityId) -> list[Trip]:
        await self.registry.get(driver_id)
        return await self.storage.trips.list_by_driver(driver_id)

    # ── Creation ──────────────────────────────────────────────────

    async def create_trip(self, user_id: EntityId, request: TripRequest) -> Trip:
        """
        Persist a PENDING trip and try to put a driver on it.

        Always returns the trip: CONFIRMED with a driver when one could be
        reserved, otherwise still PENDING with ``driver_id=None``.
        """
        if not request.pickup_address.strip() or not request.destination_address.strip():
            raise InvalidInput("Pickup and destination addresses are required")
        if await self.storage.users.get(user_id) is None:
            raise NotFound("User", user_id)
        quote = await self.quote(request)

        trip = await self.storage.trips.create(
            Trip(
                user_id=user_id,
                cab_type_id=request.cab_type_id,
                pickup_location=request.pickup,
                destination_location=request.destination,
                pickup_address=request.pickup_address,
                destination_address=request.destination_address,
                distance=quote.distance,
                price=quote.price,
                status=TripStatus.PENDING,
            )
        )
        logger.info(
            "Trip %s created for user %s (%.2f km, %.2f)",
            trip.id,
            user_id,
            trip.distance,
            trip.price,
        )
        async with self.locks.hold(_trip_key(trip.id)):
            # Visible since create; another request may have moved it on.
            trip = await self._owned(trip.id, user_id, for_update=True)
            if trip.status != TripStatus.PENDING or trip.driver_id is not None:
                return trip
            return await self._auto_assign(trip)

    async def retry_assignment(self, trip_id: EntityId, user_id: EntityId) -> Trip:
        """Run auto-assignment again for a trip still waiting for a driver."""
        async with self.locks.hold(_trip_key(trip_id)):
            trip = await self._owned(trip_id, user_id, for_update=True)
            self._require_unassigned(trip)
            return await self._auto_assign(trip)

    # ── Named transitions ─────────────────────────────────────────

    async def assign_driver(
        self, trip_id: EntityId, user_id: EntityId, driver_id: EntityId
    ) -> Trip:
        async with self.locks.hold(_trip_key(trip_id)):
            trip = await self._owned(trip_id, user_id, for_update=True)
            self._require_unassigned(trip)
            return await self._assign(trip, driver_id)

    async def start_trip(
        self,
        trip_id: EntityId,
        user_id: EntityId,
        start_time: Optional[datetime] = None,
    ) -> Trip:
        async with self.locks.hold(_trip_key(trip_id)):
            trip = await self._owned(trip_id, user_id, for_update=True)
            return await self._start(trip, _stamps(start_time=start_time))

    async def complete_trip(
        self,
        trip_id: EntityId,
        user_id: EntityId,
        end_time: Optional[datetime] = None,
    ) -> Trip:
        """Complete the trip, starting it first if it never was."""
        async with self.locks.hold(_trip_key(trip_id)):
            trip = await self._owned(trip_id, user_id, for_update=True)
            if trip.status == TripStatus.PENDING and trip.driver_id is not None:
                trip = await self._start(trip)
            return await self._complete(trip, _stamps(end_time=end_time))

    async def cancel_trip(self, trip_id: EntityId, user_id: EntityId) -> Trip:
        async with self.locks.hold(_trip_key(trip_id)):
            trip = await self._owned(trip_id, user_id, for_update=True)
            return await self._cancel(trip)

    async def update_trip_status(
        self, trip_id: EntityId, user_id: EntityId, update: TripUpdate
    ) -> Trip:
        """
        Generic patch over status, driver_id, start_time and end_time.

        A status change is routed to the matching named transition.  The
        caller's timestamps go into the same save as the new status; the
        transition derives only the ones left out.  Confirming with no
        driver to be had raises ``NoDriverAvailable``.  Without a status
        the patch may attach a driver to a pending trip or correct
        timestamps on an active one.
        """
        async with self.locks.hold(_trip_key(trip_id)):
            trip = await self._owned(trip_id, user_id, for_update=True)

            if update.status is None:
                return await self._patch_fields(trip, update)

            if (
                update.driver_id is not None
                and update.status != TripStatus.CONFIRMED
                and update.driver_id != trip.driver_id
            ):
                raise InvalidInput("driver_id can only change when confirming a trip")

            stamps = _stamps(update.start_time, update.end_time)
            if update.status == TripStatus.CONFIRMED:
                trip.check_transition(TripStatus.CONFIRMED)
                if trip.driver_id is not None:
                    return await self._save(
                        trip, status=TripStatus.CONFIRMED, **stamps
                    )
                if update.driver_id is not None:
                    return await self._assign(trip, update.driver_id, stamps)
                confirmed = await self._auto_assign(trip, stamps)
                if confirmed.driver_id is None:
                    raise NoDriverAvailable(trip.id)
                return confirmed
            if update.status == TripStatus.IN_PROGRESS:
                return await self._start(trip, stamps)
            if update.status == TripStatus.COMPLETED:
                if trip.status == TripStatus.PENDING and trip.driver_id is not None:
                    trip = await self._start(trip)
                return await self._complete(trip, stamps)
            if update.status == TripStatus.CANCELLED:
                return await self._cancel(trip, stamps)
            raise InvalidTransition(
                f"Cannot transition trip {trip.id} from {trip.status.value} "
                f"to {update.status.value}"
            )

    # ── Internals (caller holds the trip lock) ────────────────────

    async def _owned(
        self, trip_id: EntityId, user_id: EntityId, for_update: bool = False
    ) -> Trip:
        trip = await self.storage.trips.get(trip_id, for_update=for_update)
        if trip is None:
            raise NotFound("Trip", trip_id)
        if trip.user_id != user_id:
            raise Unauthorized(f"Trip {trip_id} belongs to another user")
        return trip

    @staticmethod
    def _require_unassigned(trip: Trip) -> None:
        if trip.status != TripStatus.PENDING or trip.driver_id is not None:
            raise InvalidTransition(
                f"Trip {trip.id} is not waiting for a driver "
                f"(status={trip.status.value}, driver={trip.driver_id})"
            )

    @staticmethod
    def _check_order(trip: Trip, fields: Mapping[str, Any]) -> None:
        start = fields.get("start_time", trip.start_time)
        end = fields.get("end_time", trip.end_time)
        if start is not None and end is not None and end < start:
            raise InvalidInput("end_time cannot precede start_time")

    async def _save(self, trip: Trip, **fields: Any) -> Trip:
        self._check_order(trip, fields)
        updated = await self.storage.trips.update(trip.id, **fields)
        if updated is None:
            raise NotFound("Trip", trip.id)
        return updated

    async def _candidates(self, pickup: Coordinate) -> list[Driver]:
        for radius in (self.nearby_radius_km, self.extended_radius_km):
            found = await self.registry.find_nearby(pickup, radius)
            if found:
                return found
        return await self.registry.list_available()

    async def _auto_assign(
        self, trip: Trip, stamps: Optional[Mapping[str, datetime]] = None
    ) -> Trip:
        for driver in await self._candidates(trip.pickup_location):
            try:
                return await self._assign(trip, driver.id, stamps)
            except (DriverUnavailable, NotFound) as exc:
                if isinstance(exc, NotFound) and exc.entity != "Driver":
                    raise
                logger.info(
                    "Candidate %s for trip %s lost (%s); trying next",
                    driver.id,
                    trip.id,
                    exc,
                )
        logger.info("No driver available for trip %s; left pending", trip.id)
        return trip

    async def _assign(
        self,
        trip: Trip,
        driver_id: EntityId,
        stamps: Optional[Mapping[str, datetime]] = None,
    ) -> Trip:
        trip.check_transition(TripStatus.CONFIRMED)
        fields: dict[str, Any] = {
            "driver_id": driver_id,
            "status": TripStatus.CONFIRMED,
            "start_time": self.clock(),
            **(stamps or {}),
        }
        self._check_order(trip, fields)
        await self.registry.reserve(driver_id)
        try:
            # Simulated arrival: the driver waits a few metres from pickup.
            await self.registry.relocate(
                driver_id,
                jitter(trip.pickup_location, self.rng, self.arrival_jitter_deg),
            )
            confirmed = await self._save(trip, **fields)
        except Exception:
            logger.warning(
                "Confirming trip %s failed; releasing driver %s", trip.id, driver_id
            )
            await self.registry.release(driver_id)
            raise
        logger.info("Trip %s confirmed with driver %s", trip.id, driver_id)
        return confirmed

    async def _start(
        self, trip: Trip, stamps: Optional[Mapping[str, datetime]] = None
    ) -> Trip:
        trip.check_transition(TripStatus.IN_PROGRESS)
        fields: dict[str, Any] = {"status": TripStatus.IN_PROGRESS, **(stamps or {})}
        if "start_time" not in fields and trip.start_time is None:
            fields["start_time"] = self.clock()
        started = await self._save(trip, **fields)
        logger.info("Trip %s started", trip.id)
        return started

    async def _complete(
        self, trip: Trip, stamps: Optional[Mapping[str, datetime]] = None
    ) -> Trip:
        trip.check_transition(TripStatus.COMPLETED)
        fields: dict[str, Any] = {"status": TripStatus.COMPLETED, **(stamps or {})}
        fields.setdefault("end_time", self.clock())

        completed = await self._save(trip, **fields)
        if trip.driver_id is not None:
            await self.registry.release(trip.driver_id)
            await self.registry.relocate(trip.driver_id, trip.destination_location)
        logger.info("Trip %s completed", trip.id)
        return completed

    async def _cancel(
        self, trip: Trip, stamps: Optional[Mapping[str, datetime]] = None
    ) -> Trip:
        trip.check_transition(TripStatus.CANCELLED)
        cancelled = await self._save(
            trip, status=TripStatus.CANCELLED, **(stamps or {})
        )
        if trip.driver_id is not None:
            await self.registry.release(trip.driver_id)
        logger.info("Trip %s cancelled", trip.id)
        return cancelled

    async def _patch_fields(self, trip: Trip, update: TripUpdate) -> Trip:
        if trip.is_terminal:
            raise InvalidTransition(f"Trip {trip.id} is {trip.status.value}")
        fields = _stamps(update.start_time, update.end_time)
        if update.driver_id is not None and update.driver_id != trip.driver_id:
            self._require_unassigned(trip)
            return await self._assign(trip, update.driver_id, fields)

        if fields:
            return await self._save(trip, **fields)
        if update.driver_id is None:
            raise InvalidInput("Nothing to update")
        return trip
