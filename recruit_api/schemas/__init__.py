"""Pydantic schemas for API request/response validation."""

from .base import ActionResponse, CamelCommand, CamelModel, PaginatedResponse, PaginationMeta

__all__ = [
    "ActionResponse",
    "CamelCommand",
    "CamelModel",
    "PaginatedResponse",
    "PaginationMeta",
]
