"""
Admin / observability endpoints
===============================

GET /api/v1/admin/health -- liveness plus the configured backends
"""

from fastapi import APIRouter, Depends

from ridequick.api.dependencies import get_settings
from ridequick.api.schemas import HealthResponse
from ridequick.config import Settings

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health(settings: Settings = Depends(get_settings)):
    return HealthResponse(
        storage=settings.storage_backend, locks=settings.lock_backend
    )
