"""Application queries and admin edits."""

import math
from typing import Optional

import structlog
from sqlalchemy import func, or_
from sqlalchemy.orm import Session, joinedload, selectinload

from recruit_api.config.recruitment import MAX_PROFILE_TEXT_LENGTH, MAX_WITHDRAW_REASON_LENGTH
from recruit_api.middleware.error_handler import BadRequestError, ForbiddenError, NotFoundError, ValidationAPIError
from recruit_api.models import (
    SPECIALIZED_COMPETENCIES,
    Application,
    Assessment,
    Decision,
    Interview,
    Person,
)
from recruit_api.services import audit
from recruit_api.services.pipeline import (
    ORDERED_STAGES,
    SOFT_DELETE,
    Stage,
    Status,
    advance_stage,
    parse_stage,
    parse_status,
    set_status,
)
from recruit_api.services.rbac import ActorContext
from recruit_api.services.validation import is_valid_url, sanitize_text

logger = structlog.get_logger()

URL_FIELDS = ("resume_url", "video_link", "other_file_url")
TEXT_FIELDS = ("academic_background", "previous_experience")
ADMIN_FIELDS = ("current_stage", "status")


def get_application(db: Session, application_id: str, lock: bool = False) -> Application:
    """Load an application or raise NotFoundError.

    lock takes a row lock for the rest of the transaction.
    """
    query = db.query(Application).filter(Application.id == application_id)
    if lock:
        query = query.with_for_update()
    application = query.first()
    if application is None:
        raise NotFoundError("Application", application_id)
    return application


def get_application_detail(db: Session, application_id: str) -> Application:
    application = (
        db.query(Application)
        .options(
            joinedload(Application.person),
            selectinload(Application.assessments),
            selectinload(Application.interviews),
            selectinload(Application.decisions),
        )
        .filter(Application.id == application_id)
        .first()
    )
    if application is None:
        raise NotFoundError("Application", application_id)
    return application


def has_decision(db: Session, application_id: str) -> bool:
    return db.query(Decision.id).filter(Decision.application_id == application_id).first() is not None


def list_applications(
    db: Session,
    *,
    page: int = 1,
    per_page: int = 20,
    stage: Optional[str] = None,
    status: Optional[str] = None,
    position: Optional[str] = None,
    search: Optional[str] = None,
) -> tuple[list[Application], int, int]:
    """Filtered, newest-first page of applications.

    Returns:
        (applications, total, total_pages)
    """
    query = db.query(Application).join(Person, Application.person_id == Person.id)

    if stage:
        query = query.filter(Application.current_stage == parse_stage(stage).value)
    if status:
        query = query.filter(Application.status == parse_status(status).value)
    if position:
        query = query.filter(Application.position == position)
    if search:
        # Escape SQL wildcards so they match literally
        escaped = search.strip().replace("%", r"\%").replace("_", r"\_")
        pattern = f"%{escaped}%"
        query = query.filter(
            or_(
                Person.first_name.ilike(pattern, escape="\\"),
                Person.last_name.ilike(pattern, escape="\\"),
                Person.email.ilike(pattern, escape="\\"),
            )
        )

    total = query.count()
    total_pages = math.ceil(total / per_page) if total > 0 else 1

    applications = (
        query.options(joinedload(Application.person))
        .order_by(Application.created_at.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return applications, total, total_pages


def update_application(
    db: Session,
    application_id: str,
    changes: dict,
    actor: ActorContext,
    reason: Optional[str] = None,
) -> Application:
    """Apply a closed set of field edits.

    changes holds only fields the caller sent. Stage and status edits are
    admin overrides: they may move backwards and are audited separately.
    """
    if not changes:
        raise BadRequestError("No valid fields to update")

    if any(name in changes for name in ADMIN_FIELDS) and not actor.is_admin:
        raise ForbiddenError("Admin access required for stage/status changes")

    application = get_application(db, application_id, lock=True)
    updates = {}

    for name in URL_FIELDS:
        if name in changes:
            value = (changes[name] or "").strip()
            if value and not is_valid_url(value):
                raise ValidationAPIError(f"Invalid {name} format", field=name)
            updates[name] = value or None

    for name in TEXT_FIELDS:
        if name in changes:
            updates[name] = sanitize_text(changes[name], MAX_PROFILE_TEXT_LENGTH) or None

    if "position" in changes:
        position = sanitize_text(changes["position"], 200)
        if not position:
            raise ValidationAPIError("Position cannot be empty", field="position")
        updates["position"] = position

    previous_stage = previous_status = None
    if changes.get("current_stage") is not None:
        previous_stage = advance_stage(application, changes["current_stage"], override=True)
    if changes.get("status") is not None:
        previous_status = set_status(application, changes["status"], override=True)

    for name, value in updates.items():
        setattr(application, name, value)

    db.commit()

    note = sanitize_text(reason, MAX_WITHDRAW_REASON_LENGTH) or None
    if updates:
        changed = {
            name: "(updated)" if name in TEXT_FIELDS else value
            for name, value in updates.items()
        }
        audit.log_record_updated(db, application, changed, actor)
    if previous_stage:
        audit.log_stage_change(
            db, application, previous_stage, application.current_stage,
            note or "Manual stage change by admin", actor,
        )
    if previous_status:
        audit.log_status_change(
            db, application, previous_status, application.status,
            note or "Manual status change by admin", actor,
        )

    logger.info("Application updated", application_id=application.id, fields=sorted(changes))
    return application


def withdraw_application(
    db: Session,
    application_id: str,
    actor: ActorContext,
    reason: Optional[str] = None,
) -> Application:
    """Soft delete: status becomes WITHDRAWN. Reversible by an admin edit."""
    application = get_application(db, application_id, lock=True)
    SOFT_DELETE.check(application)

    note = sanitize_text(reason, MAX_WITHDRAW_REASON_LENGTH) or "Application withdrawn by admin"
    previous_status = set_status(application, Status.WITHDRAWN.value)
    db.commit()

    snapshot = {
        "id": application.id,
        "person_id": application.person_id,
        "position": application.position,
        "current_stage": application.current_stage,
        "status": previous_status,
    }
    audit.log_record_deleted(db, snapshot, hard_delete=False, reason=note, actor=actor)
    audit.log_status_change(db, application, previous_status, application.status, note, actor)

    logger.info("Application withdrawn", application_id=application.id)
    return application


def hard_delete_application(
    db: Session,
    application_id: str,
    actor: ActorContext,
    reason: Optional[str] = None,
) -> None:
    """Delete the application and everything it owns in one transaction.

    Order: interviews, SC assessments, decisions, then the application.
    Audit and email logs carry no foreign keys and are kept.
    """
    application = get_application(db, application_id, lock=True)
    snapshot = {
        "id": application.id,
        "person_id": application.person_id,
        "position": application.position,
        "current_stage": application.current_stage,
        "status": application.status,
    }

    for interview in db.query(Interview).filter(Interview.application_id == application.id).all():
        db.delete(interview)
    for assessment in (
        db.query(Assessment)
        .filter(Assessment.application_id == application.id)
        .filter(Assessment.assessment_type == SPECIALIZED_COMPETENCIES)
        .all()
    ):
        db.delete(assessment)
    for decision in db.query(Decision).filter(Decision.application_id == application.id).all():
        db.delete(decision)
    db.flush()

    db.delete(application)
    db.commit()

    note = sanitize_text(reason, MAX_WITHDRAW_REASON_LENGTH) or None
    audit.log_record_deleted(db, snapshot, hard_delete=True, reason=note, actor=actor)
    logger.info("Application permanently deleted", application_id=snapshot["id"])


# =============================================================================
# Dashboard
# =============================================================================


def get_attention_breakdown(db: Session, position: Optional[str] = None) -> dict:
    """Counts of ACTIVE applications waiting on staff or candidate action."""
    base = db.query(func.count(Application.id)).filter(Application.status == Status.ACTIVE.value)
    if position:
        base = base.filter(Application.position == position)

    early_stages = [Stage.APPLICATION.value, Stage.GENERAL_COMPETENCIES.value]

    awaiting_gc_decision = (
        base.join(Person, Application.person_id == Person.id)
        .filter(Application.current_stage.in_(early_stages))
        .filter(Person.general_competencies_completed == True)
        .filter(Person.general_competencies_passed == False)
        .scalar()
    )
    awaiting_gc = (
        base.join(Person, Application.person_id == Person.id)
        .filter(Application.current_stage.in_(early_stages))
        .filter(Person.general_competencies_completed == False)
        .scalar()
    )
    awaiting_sc_review = (
        base.filter(Application.current_stage == Stage.SPECIALIZED_COMPETENCIES.value)
        .filter(
            Application.assessments.any(
                (Assessment.assessment_type == SPECIALIZED_COMPETENCIES)
                & Assessment.completed_at.isnot(None)
                & Assessment.passed.is_(None)
            )
        )
        .scalar()
    )
    pending_interviews = (
        base.filter(Application.current_stage == Stage.INTERVIEW.value)
        .filter(~Application.interviews.any(Interview.completed_at.isnot(None)))
        .scalar()
    )

    # Offers awaiting signature are ACCEPTED, not ACTIVE
    pending_agreement_query = (
        db.query(func.count(Application.id))
        .filter(Application.status == Status.ACCEPTED.value)
        .filter(Application.current_stage == Stage.AGREEMENT.value)
    )
    if position:
        pending_agreement_query = pending_agreement_query.filter(Application.position == position)
    pending_agreement = pending_agreement_query.scalar()

    counts = {
        "awaitingGc": awaiting_gc,
        "awaitingGcDecision": awaiting_gc_decision,
        "awaitingScReview": awaiting_sc_review,
        "pendingInterviews": pending_interviews,
        "pendingAgreement": pending_agreement,
    }
    # Candidate-side waits are reported but not counted as staff work
    counts["total"] = awaiting_gc_decision + awaiting_sc_review + pending_interviews
    return counts


def get_application_stats(db: Session, position: Optional[str] = None) -> dict:
    """Dashboard counters."""
    base = db.query(Application)
    if position:
        base = base.filter(Application.position == position)

    by_stage = {stage.value: 0 for stage in ORDERED_STAGES}
    stage_rows = (
        base.filter(Application.status == Status.ACTIVE.value)
        .with_entities(Application.current_stage, func.count(Application.id))
        .group_by(Application.current_stage)
        .all()
    )
    for stage, count in stage_rows:
        by_stage[stage] = count

    by_status = {status.value: 0 for status in Status}
    status_rows = (
        base.with_entities(Application.status, func.count(Application.id))
        .group_by(Application.status)
        .all()
    )
    for status, count in status_rows:
        by_status[status] = count

    position_rows = (
        base.with_entities(Application.position, func.count(Application.id))
        .group_by(Application.position)
        .all()
    )

    return {
        "total": sum(by_status.values()),
        "active": by_status[Status.ACTIVE.value],
        "byStage": by_stage,
        "byStatus": by_status,
        "byPosition": {position_name: count for position_name, count in position_rows},
        "attention": get_attention_breakdown(db, position),
    }
