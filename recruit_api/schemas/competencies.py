"""Pydantic schemas for the specialised competency catalog."""

from datetime import datetime
from typing import Optional

from .base import CamelCommand, CamelModel


class CompetencyCreate(CamelCommand):
    """Schema for creating a competency."""

    name: str
    category: str
    tally_form_url: str
    criterion: Optional[str] = None


class CompetencyUpdate(CamelCommand):
    """Schema for updating a competency (all fields optional)."""

    name: Optional[str] = None
    category: Optional[str] = None
    tally_form_url: Optional[str] = None
    criterion: Optional[str] = None
    is_active: Optional[bool] = None


class CompetencyResponse(CamelModel):
    id: str
    name: str
    category: str
    tally_form_url: str
    criterion: Optional[str] = None
    is_active: bool
    created_at: datetime
    updated_at: Optional[datetime] = None


class CompetencyListResponse(CamelModel):
    data: list[CompetencyResponse]
    categories: list[str]
