"""
Driver endpoints
================

GET /api/v1/drivers/nearby?lat=&lng=&radius_km= -- available drivers by distance
GET /api/v1/drivers/{driver_id}                  -- one driver
GET /api/v1/drivers/{driver_id}/trips            -- trips served, newest first
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from ridequick.api.dependencies import get_registry, get_settings, get_trip_manager
from ridequick.api.middleware import limiter, rate_limit
from ridequick.api.schemas import DriverResponse, TripResponse
from ridequick.config import Settings
from ridequick.domain.entities import Coordinate
from ridequick.services.driver_registry import DriverRegistry
from ridequick.services.trip_manager import TripLifecycleManager

router = APIRouter(prefix="/drivers", tags=["drivers"])


@router.get(
    "/nearby",
    response_model=list[DriverResponse],
    summary="Available drivers near a point, closest first",
    description=(
        "When nobody is inside the radius the closest few available "
        "drivers are returned regardless of distance."
    ),
)
@limiter.limit(rate_limit)
async def nearby_drivers(
    request: Request,
    lat: float = Query(...),
    lng: float = Query(...),
    radius_km: Optional[float] = Query(None),
    registry: DriverRegistry = Depends(get_registry),
    settings: Settings = Depends(get_settings),
):
    if radius_km is None:
        radius_km = settings.nearby_radius_km
    drivers = await registry.find_nearby(Coordinate(lat, lng), radius_km)
    return [DriverResponse.from_driver(d) for d in drivers]


@router.get("/{driver_id}", response_model=DriverResponse, summary="Get a driver")
@limiter.limit(rate_limit)
async def get_driver(
    request: Request,
    driver_id: str,
    registry: DriverRegistry = Depends(get_registry),
):
    return DriverResponse.from_driver(await registry.get(driver_id))


@router.get(
    "/{driver_id}/trips",
    response_model=list[TripResponse],
    summary="Trips served by a driver",
)
@limiter.limit(rate_limit)
async def driver_trips(
    request: Request,
    driver_id: str,
    manager: TripLifecycleManager = Depends(get_trip_manager),
):
    return [
        TripResponse.from_trip(t)
        for t in await manager.list_trips_for_driver(driver_id)
    ]
