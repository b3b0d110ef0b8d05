"""Pydantic schemas for staff user endpoints."""

from datetime import datetime
from typing import Optional

from .base import CamelCommand, CamelModel


class UserCreate(CamelCommand):
    """Schema for creating a user."""

    email: str
    name: Optional[str] = None
    scheduling_link: Optional[str] = None
    is_admin: bool = False
    has_access: bool = False


class UserUpdate(CamelCommand):
    """Schema for updating a user (all fields optional)."""

    name: Optional[str] = None
    scheduling_link: Optional[str] = None
    is_admin: Optional[bool] = None
    has_access: Optional[bool] = None


class UserResponse(CamelModel):
    id: str
    email: str
    name: Optional[str] = None
    is_admin: bool
    has_access: bool
    scheduling_link: Optional[str] = None
    last_synced_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class UserStats(CamelModel):
    total: int
    admins: int
    with_access: int


class UserListResponse(CamelModel):
    data: list[UserResponse]
    total: int
    limit: int
    offset: int
    stats: UserStats
