"""GET /api/v1/cab-types -- fare reference data."""

from fastapi import APIRouter, Depends, Request

from ridequick.api.dependencies import get_storage
from ridequick.api.middleware import limiter, rate_limit
from ridequick.api.schemas import CabTypeResponse
from ridequick.domain.repositories import Storage

router = APIRouter(prefix="/cab-types", tags=["cab-types"])


@router.get("", response_model=list[CabTypeResponse], summary="List cab types")
@limiter.limit(rate_limit)
async def list_cab_types(
    request: Request,
    storage: Storage = Depends(get_storage),
):
    return [CabTypeResponse.from_cab_type(c) for c in await storage.cab_types.list_all()]
