"""
FastAPI application factory.

* Builds the storage backend, lock manager and random source once per
  app and parks them on ``app.state``.
* Seeds the in-memory store and disposes of the engine / Redis pool via
  lifespan events.
* Maps domain errors onto HTTP status codes.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging
import random
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from ridequick.api.middleware import limiter
from ridequick.api.routes import admin, cab_types, drivers, trips, users
from ridequick.config import Settings, get_settings
from ridequick.domain.exceptions import (
    ConcurrencyConflict,
    DriverUnavailable,
    InvalidInput,
    InvalidTransition,
    NoDriverAvailable,
    NotFound,
    RideQuickError,
    StorageError,
    Unauthorized,
)
from ridequick.infrastructure.database import build_engine, build_session_factory
from ridequick.infrastructure.locks import LocalLockManager, RedisLockManager
from ridequick.infrastructure.memory import build_memory_storage
from ridequick.infrastructure.redis_client import build_redis
from ridequick.seeding import seed_storage

logger = logging.getLogger(__name__)

ERROR_STATUS: list[tuple[type[RideQuickError], int]] = [
    (InvalidInput, 400),
    (Unauthorized, 403),
    (NotFound, 404),
    (InvalidTransition, 409),
    (DriverUnavailable, 409),
    (ConcurrencyConflict, 409),
    (NoDriverAvailable, 409),
    (StorageError, 503),
]


async def _domain_error_handler(request: Request, exc: RideQuickError) -> JSONResponse:
    status = next(
        (code for kind, code in ERROR_STATUS if isinstance(exc, kind)), 500
    )
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status, content={"detail": str(exc)})


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Seed demo data on startup; release pools on shutdown."""
    state = app.state
    if state.settings.storage_backend == "memory" and state.settings.seed_memory_storage:
        await seed_storage(state.memory_storage, state.rng)
    yield
    if state.engine is not None:
        await state.engine.dispose()
    if state.redis is not None:
        await state.redis.aclose()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level.upper())

    app = FastAPI(
        title="RideQuick API",
        description=(
            "Books trips, matches them to the nearest available driver and "
            "tracks each trip from request to completion or cancellation."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Collaborators
    app.state.settings = settings
    app.state.rng = random.Random(settings.random_seed)
    app.state.engine = None
    app.state.session_factory = None
    app.state.memory_storage = None
    app.state.redis = None

    if settings.storage_backend == "sql":
        app.state.engine = build_engine(settings.database_url)
        app.state.session_factory = build_session_factory(app.state.engine)
    else:
        app.state.memory_storage = build_memory_storage()

    if settings.lock_backend == "redis":
        app.state.redis = build_redis(settings.redis_url)
        app.state.locks = RedisLockManager(
            app.state.redis,
            ttl_seconds=settings.lock_ttl_seconds,
            timeout=settings.lock_timeout_seconds,
        )
    else:
        app.state.locks = LocalLockManager(timeout=settings.lock_timeout_seconds)

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(RideQuickError, _domain_error_handler)

    # Routers
    app.include_router(trips.router, prefix="/api/v1")
    app.include_router(drivers.router, prefix="/api/v1")
    app.include_router(cab_types.router, prefix="/api/v1")
    app.include_router(users.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    logger.info(
        "RideQuick configured (storage=%s, locks=%s)",
        settings.storage_backend,
        settings.lock_backend,
    )
    return app
