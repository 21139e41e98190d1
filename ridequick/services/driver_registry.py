"""
Driver Registry
===============

Answers "which available drivers are near location L" and owns the
reserve / release / relocate operations on a driver.

Nearby search
-------------
1. Ask the repository for every available driver within the radius
   (registration order).
2. Sort by haversine distance.  ``sorted`` is stable, so equal distances
   keep registration order and the first registered driver wins.
3. If nothing is inside the radius but someone is available somewhere,
   return the ``fallback_candidates`` closest drivers anyway so a trip is
   never left unmatched for want of a nearby driver.

Complexity: O(n log n) in the number of available drivers.

Reservation
-----------
``reserve`` is a compare-and-set in the repository
(available -> unavailable), so of two concurrent reservations of the same
driver exactly one succeeds; the other gets ``DriverUnavailable``.
"""

from __future__ import annotations

import logging
import math
import random
from typing import Optional

from ridequick.domain.entities import Coordinate, Driver, EntityId
from ridequick.domain.exceptions import InvalidInput, NotFound
from ridequick.domain.geo import haversine_km
from ridequick.domain.repositories import DriverRepository

logger = logging.getLogger(__name__)

MIN_SEED_RATING = 4.5
MAX_RATING = 5.0


class DriverRegistry:
    def __init__(
        self,
        drivers: DriverRepository,
        rng: Optional[random.Random] = None,
        fallback_candidates: int = 3,
    ):
        self.drivers = drivers
        self.rng = rng or random.Random()
        self.fallback_candidates = fallback_candidates

    async def register(
        self,
        *,
        full_name: str,
        phone: str,
        license_plate: str,
        car_model: str,
        location: Coordinate,
        rating: Optional[float] = None,
    ) -> Driver:
        """Create a driver; without an explicit rating one is drawn in [4.5, 5.0]."""
        if rating is None:
            rating = round(self.rng.uniform(MIN_SEED_RATING, MAX_RATING), 2)
        if not 1.0 <= rating <= MAX_RATING:
            raise InvalidInput(f"Rating must be within [1.0, 5.0], got {rating}")
        return await self.drivers.create(
            Driver(
                full_name=full_name,
                phone=phone,
                license_plate=license_plate,
                car_model=car_model,
                rating=rating,
                is_available=True,
                current_location=location,
            )
        )

    async def get(self, driver_id: EntityId) -> Driver:
        driver = await self.drivers.get(driver_id)
        if driver is None:
            raise NotFound("Driver", driver_id)
        return driver

    async def list_available(self) -> list[Driver]:
        return await self.drivers.list_all_available()

    async def find_nearby(
        self, location: Coordinate, radius_km: float
    ) -> list[Driver]:
        if not math.isfinite(radius_km) or radius_km < 0:
            raise InvalidInput(
                f"Radius must be a non-negative number, got {radius_km}"
            )

        within = await self.drivers.find_available_within(location, radius_km)
        if within:
            return self._by_distance(location, within)

        available = await self.drivers.list_all_available()
        if not available:
            return []
        closest = self._by_distance(location, available)[: self.fallback_candidates]
        logger.debug(
            "No driver within %.1f km of %s; falling back to %d closest",
            radius_km,
            location,
            len(closest),
        )
        return closest

    async def reserve(self, driver_id: EntityId) -> Driver:
        driver = await self.drivers.set_availability(
            driver_id, False, expected=True
        )
        if driver is None:
            raise NotFound("Driver", driver_id)
        logger.info("Driver %s reserved", driver_id)
        return driver

    async def release(self, driver_id: EntityId) -> Driver:
        driver = await self.drivers.set_availability(driver_id, True)
        if driver is None:
            raise NotFound("Driver", driver_id)
        logger.info("Driver %s released", driver_id)
        return driver

    async def relocate(self, driver_id: EntityId, location: Coordinate) -> Driver:
        driver = await self.drivers.update_location(driver_id, location)
        if driver is None:
            raise NotFound("Driver", driver_id)
        return driver

    @staticmethod
    def _by_distance(location: Coordinate, drivers: list[Driver]) -> list[Driver]:
        return sorted(
            drivers, key=lambda d: haversine_km(location, d.current_location)
        )
