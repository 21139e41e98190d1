"""
Trip endpoints
==============

POST  /api/v1/trips/quote              -- distance, fare and travel time
POST  /api/v1/trips                    -- book a trip (201; confirmed or pending)
GET   /api/v1/trips                    -- the requester's trips, newest first
GET   /api/v1/trips/{trip_id}          -- one trip
PATCH /api/v1/trips/{trip_id}          -- status / driver / timestamp update
POST  /api/v1/trips/{trip_id}/assign   -- retry driver assignment
POST  /api/v1/trips/{trip_id}/start    -- begin the ride
POST  /api/v1/trips/{trip_id}/complete -- finish the ride
POST  /api/v1/trips/{trip_id}/cancel   -- cancel the ride

Every endpoint acts on behalf of the ``X-User-Id`` requester; trips owned
by someone else answer 403.
"""

from fastapi import APIRouter, Depends, Request

from ridequick.api.dependencies import get_current_user_id, get_trip_manager
from ridequick.api.middleware import limiter, rate_limit
from ridequick.api.schemas import (
    ErrorResponse,
    QuoteResponse,
    TripCreateRequest,
    TripResponse,
    TripUpdateRequest,
)
from ridequick.services.trip_manager import TripLifecycleManager

router = APIRouter(
    prefix="/trips",
    tags=["trips"],
    responses={
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)


@router.post(
    "/quote",
    response_model=QuoteResponse,
    summary="Price a trip without booking it",
)
@limiter.limit(rate_limit)
async def quote_trip(
    request: Request,
    body: TripCreateRequest,
    manager: TripLifecycleManager = Depends(get_trip_manager),
):
    return QuoteResponse.from_quote(await manager.quote(body.to_domain()))


@router.post(
    "",
    status_code=201,
    response_model=TripResponse,
    summary="Book a trip",
    description=(
        "Creates the trip and immediately tries to reserve the nearest "
        "available driver.  The trip comes back CONFIRMED with a driver, or "
        "PENDING with ``driver_id = null`` when nobody is available."
    ),
)
@limiter.limit(rate_limit)
async def create_trip(
    request: Request,
    body: TripCreateRequest,
    user_id: str = Depends(get_current_user_id),
    manager: TripLifecycleManager = Depends(get_trip_manager),
):
    trip = await manager.create_trip(user_id, body.to_domain())
    return TripResponse.from_trip(trip)


@router.get("", response_model=list[TripResponse], summary="List my trips")
@limiter.limit(rate_limit)
async def list_trips(
    request: Request,
    user_id: str = Depends(get_current_user_id),
    manager: TripLifecycleManager = Depends(get_trip_manager),
):
    return [
        TripResponse.from_trip(t) for t in await manager.list_trips_for_user(user_id)
    ]


@router.get("/{trip_id}", response_model=TripResponse, summary="Get a trip")
@limiter.limit(rate_limit)
async def get_trip(
    request: Request,
    trip_id: str,
    user_id: str = Depends(get_current_user_id),
    manager: TripLifecycleManager = Depends(get_trip_manager),
):
    return TripResponse.from_trip(await manager.get_trip(trip_id, user_id))


@router.patch(
    "/{trip_id}",
    response_model=TripResponse,
    summary="Update trip status",
    description=(
        "Accepts ``status``, ``driver_id``, ``start_time`` and ``end_time`` "
        "only.  Timestamps the caller leaves out are derived from the "
        "transition (completing sets ``end_time``, starting sets "
        "``start_time`` if it is still empty)."
    ),
)
@limiter.limit(rate_limit)
async def update_trip(
    request: Request,
    trip_id: str,
    body: TripUpdateRequest,
    user_id: str = Depends(get_current_user_id),
    manager: TripLifecycleManager = Depends(get_trip_manager),
):
    trip = await manager.update_trip_status(trip_id, user_id, body.to_domain())
    return TripResponse.from_trip(trip)


@router.post(
    "/{trip_id}/assign",
    response_model=TripResponse,
    summary="Retry driver assignment for a pending trip",
)
@limiter.limit(rate_limit)
async def assign_trip(
    request: Request,
    trip_id: str,
    user_id: str = Depends(get_current_user_id),
    manager: TripLifecycleManager = Depends(get_trip_manager),
):
    return TripResponse.from_trip(await manager.retry_assignment(trip_id, user_id))


@router.post("/{trip_id}/start", response_model=TripResponse, summary="Start a trip")
@limiter.limit(rate_limit)
async def start_trip(
    request: Request,
    trip_id: str,
    user_id: str = Depends(get_current_user_id),
    manager: TripLifecycleManager = Depends(get_trip_manager),
):
    return TripResponse.from_trip(await manager.start_trip(trip_id, user_id))


@router.post(
    "/{trip_id}/complete",
    response_model=TripResponse,
    summary="Complete a trip",
    description="Frees the driver and moves them to the destination.",
)
@limiter.limit(rate_limit)
async def complete_trip(
    request: Request,
    trip_id: str,
    user_id: str = Depends(get_current_user_id),
    manager: TripLifecycleManager = Depends(get_trip_manager),
):
    return TripResponse.from_trip(await manager.complete_trip(trip_id, user_id))


@router.post(
    "/{trip_id}/cancel",
    response_model=TripResponse,
    summary="Cancel a trip",
    description="Allowed from pending, confirmed and in_progress; frees the driver.",
)
@limiter.limit(rate_limit)
async def cancel_trip(
    request: Request,
    trip_id: str,
    user_id: str = Depends(get_current_user_id),
    manager: TripLifecycleManager = Depends(get_trip_manager),
):
    return TripResponse.from_trip(await manager.cancel_trip(trip_id, user_id))
