"""FastAPI dependency injection helpers."""

from __future__ import annotations

from typing import AsyncIterator, Optional

from fastapi import Depends, Header, HTTPException, Request

from ridequick.config import Settings
from ridequick.domain.repositories import Storage
from ridequick.infrastructure.repositories import build_sql_storage
from ridequick.services.driver_registry import DriverRegistry
from ridequick.services.trip_manager import TripLifecycleManager


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


async def get_storage(request: Request) -> AsyncIterator[Storage]:
    """
    Yield the repositories for this request.

    SQL backend: one session per request; commit on success, rollback on
    error.  Memory backend: the process-wide store.
    """
    state = request.app.state
    if state.settings.storage_backend == "memory":
        yield state.memory_storage
        return

    async with state.session_factory() as session:
        try:
            yield build_sql_storage(session)
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_registry(
    request: Request, storage: Storage = Depends(get_storage)
) -> DriverRegistry:
    state = request.app.state
    return DriverRegistry(
        storage.drivers,
        rng=state.rng,
        fallback_candidates=state.settings.fallback_candidates,
    )


def get_trip_manager(
    request: Request,
    storage: Storage = Depends(get_storage),
    registry: DriverRegistry = Depends(get_registry),
) -> TripLifecycleManager:
    state = request.app.state
    settings: Settings = state.settings
    return TripLifecycleManager(
        storage,
        registry,
        state.locks,
        rng=state.rng,
        nearby_radius_km=settings.nearby_radius_km,
        extended_radius_km=settings.extended_radius_km,
        arrival_jitter_deg=settings.arrival_jitter_deg,
        average_speed_kmh=settings.average_speed_kmh,
    )


def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """Requester identity, set by the authenticating gateway."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    return x_user_id
