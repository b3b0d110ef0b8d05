"""Specialised competency catalog."""

from typing import Optional

import structlog
from sqlalchemy.orm import Session

from recruit_api.config.recruitment import MAX_COMPETENCY_NAME_LENGTH, MAX_CRITERION_LENGTH, SC_CATEGORIES
from recruit_api.middleware.error_handler import BadRequestError, NotFoundError, ValidationAPIError
from recruit_api.models import Assessment, SpecialisedCompetency
from recruit_api.services.rbac import ActorContext
from recruit_api.services.validation import is_valid_url, sanitize_text

logger = structlog.get_logger()


def _clean_name(value: Optional[str]) -> str:
    name = sanitize_text(value, MAX_COMPETENCY_NAME_LENGTH + 1)
    if not name:
        raise ValidationAPIError("Name is required", field="name")
    if len(name) > MAX_COMPETENCY_NAME_LENGTH:
        raise ValidationAPIError(
            f"Name must be {MAX_COMPETENCY_NAME_LENGTH} characters or fewer", field="name"
        )
    return name


def _clean_category(value: Optional[str]) -> str:
    if value not in SC_CATEGORIES:
        raise ValidationAPIError(
            f"Invalid category. Must be one of: {', '.join(SC_CATEGORIES)}", field="category"
        )
    return value


def _clean_form_url(value: Optional[str]) -> str:
    if not is_valid_url(value):
        raise ValidationAPIError("Invalid tallyFormUrl format", field="tallyFormUrl")
    return value.strip()


def _clean_criterion(value: Optional[str]) -> Optional[str]:
    criterion = sanitize_text(value, MAX_CRITERION_LENGTH + 1)
    if criterion and len(criterion) > MAX_CRITERION_LENGTH:
        raise ValidationAPIError(
            f"Criterion must be {MAX_CRITERION_LENGTH} characters or fewer", field="criterion"
        )
    return criterion or None


def list_competencies(
    db: Session,
    actor: ActorContext,
    category: Optional[str] = None,
    include_inactive: bool = True,
) -> list[SpecialisedCompetency]:
    """Admins may see inactive entries; everyone else sees the active catalog."""
    query = db.query(SpecialisedCompetency)
    if not (actor.is_admin and include_inactive):
        query = query.filter(SpecialisedCompetency.is_active == True)
    if category:
        query = query.filter(SpecialisedCompetency.category == _clean_category(category))
    return query.order_by(SpecialisedCompetency.category, SpecialisedCompetency.name).all()


def get_competency(db: Session, competency_id: str) -> SpecialisedCompetency:
    competency = db.query(SpecialisedCompetency).filter(SpecialisedCompetency.id == competency_id).first()
    if competency is None:
        raise NotFoundError("Competency", competency_id)
    return competency


def create_competency(db: Session, data: dict, actor: ActorContext) -> SpecialisedCompetency:
    competency = SpecialisedCompetency(
        name=_clean_name(data.get("name")),
        category=_clean_category(data.get("category")),
        tally_form_url=_clean_form_url(data.get("tally_form_url")),
        criterion=_clean_criterion(data.get("criterion")),
        is_active=True,
    )
    db.add(competency)
    db.commit()
    db.refresh(competency)

    logger.info("Competency created", id=competency.id, category=competency.category, created_by=actor.user_id)
    return competency


def update_competency(db: Session, competency_id: str, changes: dict, actor: ActorContext) -> SpecialisedCompetency:
    """Apply the fields the caller sent."""
    if not changes:
        raise BadRequestError("No valid fields to update")

    competency = get_competency(db, competency_id)

    cleaners = {
        "name": _clean_name,
        "category": _clean_category,
        "tally_form_url": _clean_form_url,
        "criterion": _clean_criterion,
    }
    for name, value in changes.items():
        if name == "is_active":
            if value is None:
                raise ValidationAPIError("isActive cannot be null", field="isActive")
            competency.is_active = bool(value)
        else:
            setattr(competency, name, cleaners[name](value))

    db.commit()
    db.refresh(competency)

    logger.info("Competency updated", id=competency.id, fields=sorted(changes), updated_by=actor.user_id)
    return competency


def deactivate_competency(db: Session, competency_id: str, actor: ActorContext, force: bool = False) -> None:
    """Soft delete by default. force removes the row and unlinks assessments."""
    competency = get_competency(db, competency_id)

    if force:
        (
            db.query(Assessment)
            .filter(Assessment.specialised_competency_id == competency.id)
            .update({Assessment.specialised_competency_id: None}, synchronize_session=False)
        )
        db.delete(competency)
        db.commit()
        logger.info("Competency deleted", id=competency_id, deleted_by=actor.user_id)
        return

    if not competency.is_active:
        raise BadRequestError("Competency is already inactive")

    competency.is_active = False
    db.commit()
    logger.info("Competency deactivated", id=competency.id, deactivated_by=actor.user_id)


def reactivate_competency(db: Session, competency_id: str, actor: ActorContext) -> SpecialisedCompetency:
    competency = get_competency(db, competency_id)
    if competency.is_active:
        raise BadRequestError("Competency is already active")

    competency.is_active = True
    db.commit()
    db.refresh(competency)

    logger.info("Competency reactivated", id=competency.id, reactivated_by=actor.user_id)
    return competency
