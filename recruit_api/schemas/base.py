"""Base Pydantic schemas with camelCase conversion."""

from typing import Generic, TypeVar

from humps import camelize
from pydantic import BaseModel, ConfigDict


def to_camel(string: str) -> str:
    """Convert snake_case to camelCase."""
    return camelize(string)


class CamelModel(BaseModel):
    """
    Base model that converts snake_case fields to camelCase in JSON.

    Usage:
        class MyResponse(CamelModel):
            current_stage: str   # JSON: currentStage
            person_id: str       # JSON: personId
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class CamelCommand(CamelModel):
    """Request body with a closed set of fields; unknown keys are rejected."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


T = TypeVar("T")


class PaginationMeta(CamelModel):
    """Pagination metadata."""

    page: int
    per_page: int
    total: int
    total_pages: int


class PaginatedResponse(CamelModel, Generic[T]):
    """
    Generic paginated response wrapper.

    Usage:
        PaginatedResponse[ApplicationListItem](
            data=[...],
            meta=PaginationMeta(page=1, per_page=20, total=100, total_pages=5)
        )
    """

    data: list[T]
    meta: PaginationMeta


class ActionResponse(CamelModel):
    """Acknowledgement for action endpoints."""

    success: bool = True
    message: str
