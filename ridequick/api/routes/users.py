"""GET /api/v1/users/me -- the requester's own profile."""

from fastapi import APIRouter, Depends, Request

from ridequick.api.dependencies import get_current_user_id, get_storage
from ridequick.api.middleware import limiter, rate_limit
from ridequick.api.schemas import ErrorResponse, UserResponse
from ridequick.domain.exceptions import NotFound
from ridequick.domain.repositories import Storage

router = APIRouter(
    prefix="/users",
    tags=["users"],
    responses={404: {"model": ErrorResponse}},
)


@router.get("/me", response_model=UserResponse, summary="Current user profile")
@limiter.limit(rate_limit)
async def current_user(
    request: Request,
    user_id: str = Depends(get_current_user_id),
    storage: Storage = Depends(get_storage),
):
    user = await storage.users.get(user_id)
    if user is None:
        raise NotFound("User", user_id)
    return UserResponse.from_user(user)
