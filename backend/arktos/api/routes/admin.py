"""Staff-only routes gated by role."""

from typing import Annotated

from api.dependencies import PageParams, get_auth_service
from core.auth_helper import STAFF_ONLY, AuthContext, require_role
from core.logging import logger
from fastapi import APIRouter, Depends
from schemas.auth import UserPublic
from schemas.common import PaginatedResponse, paginated_response
from services.auth_service import AuthService

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/users", response_model=PaginatedResponse[UserPublic])
async def list_users(
    current_user: Annotated[AuthContext, Depends(require_role(STAFF_ONLY))],
    service: Annotated[AuthService, Depends(get_auth_service)],
    params: Annotated[PageParams, Depends()],
):
    """List accounts, newest first (ADMIN and MODERATOR only)."""
    logger.debug("User list requested by user_id={}", current_user.user_id)
    users, total = await service.list_users(page=params.page, limit=params.limit)
    return paginated_response(users, total=total, page=params.page, limit=params.limit)
