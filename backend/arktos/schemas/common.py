"""Response envelope shared by every endpoint.

All responses are shaped as
``{success, message?, data?, code?, timestamp}``; paginated responses add a
``pagination`` block. Field names are camelCase on the wire.
"""

import math
from datetime import datetime, timezone
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class CamelModel(BaseModel):
    """Base model serializing to camelCase and accepting either case."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ApiResponse(CamelModel, Generic[T]):
    success: bool
    message: str | None = None
    data: T | None = None
    code: str | None = None
    timestamp: str = Field(default_factory=utc_timestamp)


class ErrorResponse(CamelModel):
    success: bool = False
    message: str
    code: str
    errors: list[dict[str, Any]] | None = None
    timestamp: str = Field(default_factory=utc_timestamp)


class Pagination(CamelModel):
    total: int
    page: int
    limit: int
    total_pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, *, total: int, page: int, limit: int) -> "Pagination":
        total_pages = math.ceil(total / limit) if limit else 0
        return cls(
            total=total,
            page=page,
            limit=limit,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1,
        )


class PaginatedResponse(ApiResponse[list[T]], Generic[T]):
    pagination: Pagination


def success_response(
    data: Any = None, message: str | None = None, code: str | None = None
) -> ApiResponse:
    return ApiResponse(success=True, data=data, message=message, code=code)


def paginated_response(
    items: list,
    *,
    total: int,
    page: int,
    limit: int,
    message: str | None = None,
) -> PaginatedResponse:
    return PaginatedResponse(
        success=True,
        data=items,
        message=message,
        pagination=Pagination.build(total=total, page=page, limit=limit),
    )
