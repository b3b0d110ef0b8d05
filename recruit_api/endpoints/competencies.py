"""Specialised competency catalog endpoints."""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from recruit_api.config.database import get_db
from recruit_api.config.recruitment import SC_CATEGORIES
from recruit_api.middleware.error_handler import BadRequestError
from recruit_api.schemas.base import ActionResponse
from recruit_api.schemas.competencies import (
    CompetencyCreate,
    CompetencyListResponse,
    CompetencyResponse,
    CompetencyUpdate,
)
from recruit_api.services import competencies as competency_service
from recruit_api.services.rbac import ActorContext, require_access, require_admin
from recruit_api.services.validation import is_valid_uuid

logger = structlog.get_logger()
router = APIRouter()


def _check_id(competency_id: str) -> str:
    if not is_valid_uuid(competency_id):
        raise BadRequestError("Invalid competency ID format")
    return competency_id


@router.get("", response_model=CompetencyListResponse)
async def list_competencies(
    db: Session = Depends(get_db),
    category: Optional[str] = Query(None),
    include_inactive: bool = Query(True, alias="includeInactive"),
    actor: ActorContext = Depends(require_access),
):
    """List the catalog. Inactive entries are only visible to admins."""
    competencies = competency_service.list_competencies(
        db, actor, category=category, include_inactive=include_inactive,
    )
    return CompetencyListResponse(
        data=[CompetencyResponse.model_validate(c) for c in competencies],
        categories=SC_CATEGORIES,
    )


@router.get("/{competency_id}", response_model=CompetencyResponse)
async def get_competency(
    competency_id: str,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_access),
):
    """Get a competency by ID."""
    competency = competency_service.get_competency(db, _check_id(competency_id))
    return CompetencyResponse.model_validate(competency)


@router.post("", response_model=CompetencyResponse, status_code=201)
async def create_competency(
    data: CompetencyCreate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_admin),
):
    """Create a new competency."""
    competency = competency_service.create_competency(db, data.model_dump(), actor)
    return CompetencyResponse.model_validate(competency)


@router.patch("/{competency_id}", response_model=CompetencyResponse)
async def update_competency(
    competency_id: str,
    data: CompetencyUpdate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_admin),
):
    """Update a competency (only provided fields)."""
    competency = competency_service.update_competency(
        db, _check_id(competency_id), data.model_dump(exclude_unset=True), actor,
    )
    return CompetencyResponse.model_validate(competency)


@router.delete("/{competency_id}", response_model=ActionResponse)
async def delete_competency(
    competency_id: str,
    force: bool = Query(False),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_admin),
):
    """Deactivate a competency, or delete it outright with force=true."""
    competency_service.deactivate_competency(db, _check_id(competency_id), actor, force=force)
    return ActionResponse(message="Competency deleted" if force else "Competency deactivated")


@router.post("/{competency_id}/reactivate", response_model=CompetencyResponse)
async def reactivate_competency(
    competency_id: str,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_admin),
):
    """Make a deactivated competency available again."""
    competency = competency_service.reactivate_competency(db, _check_id(competency_id), actor)
    return CompetencyResponse.model_validate(competency)
