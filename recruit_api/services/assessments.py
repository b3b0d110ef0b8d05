"""Specialised competency assessment review."""

import structlog
from sqlalchemy.orm import Session

from recruit_api.config.settings import settings
from recruit_api.middleware.error_handler import BadRequestError, NotFoundError, ValidationAPIError
from recruit_api.models import SPECIALIZED_COMPETENCIES, Application, Assessment, SpecialisedCompetency
from recruit_api.models.base import utcnow
from recruit_api.services import audit
from recruit_api.services.applications import get_application
from recruit_api.services.pipeline import REVIEW_SC
from recruit_api.services.rbac import ActorContext
from recruit_api.services.validation import is_valid_uuid

logger = structlog.get_logger()


def review_sc_assessment(
    db: Session,
    application_id: str,
    assessment_id: str,
    passed: bool,
    actor: ActorContext,
) -> Assessment:
    """Mark a completed specialised assessment as passed or failed.

    The stage is left alone; a pass is what later allows an interview to
    be scheduled.
    """
    if not is_valid_uuid(assessment_id):
        raise ValidationAPIError("Invalid assessmentId format", field="assessmentId")

    application = get_application(db, application_id, lock=True)
    REVIEW_SC.check(application)

    assessment = (
        db.query(Assessment)
        .filter(Assessment.id == assessment_id)
        .filter(Assessment.application_id == application.id)
        .filter(Assessment.assessment_type == SPECIALIZED_COMPETENCIES)
        .first()
    )
    if assessment is None:
        raise NotFoundError("Assessment", assessment_id)

    if assessment.completed_at is None:
        raise BadRequestError("Assessment has not been completed by the candidate yet")

    assessment.passed = passed
    assessment.reviewed_at = utcnow()
    assessment.reviewed_by = actor.user_id
    db.commit()

    audit.log_assessment_reviewed(db, application, assessment, actor)
    logger.info(
        "Specialised assessment reviewed",
        application_id=application.id,
        assessment_id=assessment.id,
        passed=passed,
        reviewed_by=actor.user_id,
    )
    return assessment


def open_sc_assessments(
    db: Session,
    application: Application,
    competencies: list[SpecialisedCompetency],
) -> list[Assessment]:
    """Create a pending assessment per invited competency.

    Pending rows (no completed_at) let a submission that only carries the
    respondent be matched back to its application. Competencies that
    already have a pending row are not duplicated. Flushes, never commits.
    """
    existing = {
        competency_id
        for (competency_id,) in (
            db.query(Assessment.specialised_competency_id)
            .filter(Assessment.application_id == application.id)
            .filter(Assessment.assessment_type == SPECIALIZED_COMPETENCIES)
            .filter(Assessment.completed_at.is_(None))
            .all()
        )
    }

    created = []
    for competency in competencies:
        if competency.id in existing:
            continue
        assessment = Assessment(
            assessment_type=SPECIALIZED_COMPETENCIES,
            application_id=application.id,
            specialised_competency_id=competency.id,
            threshold=settings.SC_THRESHOLD,
        )
        db.add(assessment)
        created.append(assessment)

    db.flush()
    return created
