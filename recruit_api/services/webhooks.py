"""Handlers for the four Tally webhooks.

Each handler checks its dedup key before writing, persists the key in the
same commit as the mutation, and falls back to the unique constraint when
a concurrent delivery wins the race. Audit entries and email follow the
commit and never fail the webhook.
"""

import json
from dataclasses import replace
from typing import Callable, Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from recruit_api.config.settings import settings
from recruit_api.integrations.tally import (
    TallyMappingError,
    TallyWebhookPayload,
    extract_agreement_data,
    extract_application_data,
    extract_gc_assessment_data,
    extract_person_data,
    extract_sc_assessment_data,
)
from recruit_api.middleware.error_handler import TransitionError, WebhookError
from recruit_api.middleware.logging import sanitize_for_log
from recruit_api.models import (
    GENERAL_COMPETENCIES,
    SPECIALIZED_COMPETENCIES,
    Application,
    Assessment,
)
from recruit_api.models.base import utcnow
from recruit_api.services import audit
from recruit_api.services.email import EmailService, send_best_effort
from recruit_api.services.persons import (
    find_or_create_person,
    find_person_for_submission,
    get_applications_awaiting_gc,
)
from recruit_api.services.pipeline import (
    RECEIVE_SC,
    SIGN_AGREEMENT,
    Stage,
    Status,
    advance_stage,
    calc_missing_fields,
    set_status,
)
from recruit_api.services.rbac import SYSTEM_ACTOR, ActorContext
from recruit_api.services.validation import is_valid_uuid

logger = structlog.get_logger()

DUPLICATE_MESSAGE = "Duplicate submission - already processed"


def _duplicate(**ids) -> dict:
    return {"success": True, "message": DUPLICATE_MESSAGE, **ids}


def _webhook_actor(ip: Optional[str]) -> ActorContext:
    return replace(SYSTEM_ACTOR, ip_address=ip)


def _commit_or_existing(db: Session, lookup: Callable):
    """Commit, or return the row that beat us to the dedup key.

    Returns None on a clean commit. Re-raises when the constraint that
    fired was not the dedup key.
    """
    try:
        db.commit()
        return None
    except IntegrityError:
        db.rollback()
        existing = lookup()
        if existing is None:
            raise
        return existing


def _extract(extractor, payload: TallyWebhookPayload):
    try:
        return extractor(payload)
    except TallyMappingError as e:
        logger.warning("Webhook payload missing required field", error=str(e))
        raise WebhookError(str(e), 400)


def _application_by_submission(db: Session, submission_id: str) -> Optional[Application]:
    return db.query(Application).filter(Application.tally_submission_id == submission_id).first()


def _application_by_agreement_submission(db: Session, submission_id: str) -> Optional[Application]:
    return (
        db.query(Application)
        .filter(Application.agreement_tally_submission_id == submission_id)
        .first()
    )


def _assessment_by_submission(db: Session, submission_id: str) -> Optional[Assessment]:
    return db.query(Assessment).filter(Assessment.tally_submission_id == submission_id).first()


def _submission_details(payload: TallyWebhookPayload, **extra) -> dict:
    return {
        "submissionId": payload.data.submission_id,
        "formId": payload.data.form_id,
        "formName": payload.data.form_name,
        "eventId": payload.event_id,
        **extra,
    }


# =============================================================================
# Application
# =============================================================================


def handle_application(
    db: Session,
    payload: TallyWebhookPayload,
    email: EmailService,
    ip: Optional[str] = None,
) -> dict:
    """Create the person (if new) and the application."""
    submission_id = payload.data.submission_id

    existing = _application_by_submission(db, submission_id)
    if existing:
        logger.info("Duplicate application submission ignored", submission_id=sanitize_for_log(submission_id))
        return _duplicate(applicationId=existing.id)

    person_data = _extract(extract_person_data, payload)
    application_data = _extract(extract_application_data, payload)

    person, person_created = find_or_create_person(db, person_data)

    application = Application(
        person_id=person.id,
        position=application_data.position,
        current_stage=Stage.APPLICATION.value,
        status=Status.ACTIVE.value,
        resume_url=application_data.resume_url,
        academic_background=application_data.academic_background,
        previous_experience=application_data.previous_experience,
        video_link=application_data.video_link,
        other_file_url=application_data.other_file_url,
        has_resume=application_data.has_resume,
        has_academic_bg=application_data.has_academic_bg,
        has_video_intro=application_data.has_video_intro,
        has_previous_exp=application_data.has_previous_exp,
        has_other_file=application_data.has_other_file,
        tally_submission_id=submission_id,
    )
    db.add(application)

    winner = _commit_or_existing(db, lambda: _application_by_submission(db, submission_id))
    if winner:
        return _duplicate(applicationId=winner.id)

    if person_created:
        audit.log_person_created(db, person, source="tally_application", ip_address=ip)
    audit.log_webhook_received(
        db,
        "application",
        _submission_details(payload, personCreated=person_created, position=application.position),
        person_id=person.id,
        application_id=application.id,
        ip_address=ip,
    )
    audit.log_application_created(
        db,
        application,
        {"tallySubmissionId": submission_id, "personCreated": person_created},
        ip_address=ip,
    )

    send_best_effort(email, "send_application_received", person, application)

    if not person.general_competencies_completed:
        next_step = "general_competencies"
        message = "Application received. General competencies assessment pending."
    elif person.general_competencies_passed:
        next_step = "specialized_competencies"
        message = "Application received. Advancing to specialised competencies stage."
        previous = advance_stage(application, Stage.SPECIALIZED_COMPETENCIES.value)
        db.commit()
        if previous:
            audit.log_stage_change(
                db,
                application,
                previous,
                application.current_stage,
                "Auto-advanced: person already passed general competencies",
                _webhook_actor(ip),
            )
    else:
        next_step = "awaiting_gc_decision"
        message = "Application received. General competencies not passed, awaiting admin decision."

    missing_fields = calc_missing_fields(application)

    logger.info(
        "Application webhook processed",
        application_id=application.id,
        person_id=person.id,
        next_step=next_step,
    )

    return {
        "success": True,
        "message": message,
        "data": {
            "applicationId": application.id,
            "personId": person.id,
            "isNewPerson": person_created,
            "position": application.position,
            "currentStage": application.current_stage,
            "status": application.status,
            "nextStep": next_step,
            "missingFields": missing_fields,
        },
    }


# =============================================================================
# General competencies
# =============================================================================


def handle_general_competencies(
    db: Session,
    payload: TallyWebhookPayload,
    ip: Optional[str] = None,
) -> dict:
    """Record the person's GC result and fan it out to their applications."""
    submission_id = payload.data.submission_id

    existing = _assessment_by_submission(db, submission_id)
    if existing:
        logger.info("Duplicate GC submission ignored", submission_id=sanitize_for_log(submission_id))
        return _duplicate(assessmentId=existing.id)

    data = _extract(extract_gc_assessment_data, payload)

    person = find_person_for_submission(db, person_id=data.person_id) if is_valid_uuid(data.person_id) else None
    if person is None:
        logger.warning("GC webhook for unknown person", person_id=sanitize_for_log(data.person_id))
        raise WebhookError("Person not found", 404)

    threshold = settings.GC_THRESHOLD
    passed = data.score >= threshold
    score = int(round(data.score))
    now = utcnow()

    if person.general_competencies_completed:
        logger.info("Person already completed GC, replacing result", person_id=person.id)

    # Person result, assessment replacement and fan-out share one commit
    person.general_competencies_completed = True
    person.general_competencies_score = score
    person.general_competencies_passed = passed
    person.general_competencies_completed_at = now

    (
        db.query(Assessment)
        .filter(Assessment.person_id == person.id)
        .filter(Assessment.assessment_type == GENERAL_COMPETENCIES)
        .filter(Assessment.superseded_at.is_(None))
        .update({Assessment.superseded_at: now}, synchronize_session=False)
    )

    assessment = Assessment(
        assessment_type=GENERAL_COMPETENCIES,
        person_id=person.id,
        score=score,
        passed=passed,
        threshold=threshold,
        completed_at=now,
        raw_data=json.dumps(data.raw_data),
        tally_submission_id=submission_id,
    )
    db.add(assessment)

    awaiting = get_applications_awaiting_gc(db, person.id)
    stage_changes = []
    status_changes = []
    awaiting_review = []

    for application in awaiting:
        if passed:
            previous = advance_stage(application, Stage.SPECIALIZED_COMPETENCIES.value)
            if previous:
                stage_changes.append((application, previous))
        elif settings.GC_AUTO_REJECT_ON_FAIL:
            previous = set_status(application, Status.REJECTED.value)
            if previous:
                status_changes.append((application, previous))
        else:
            awaiting_review.append(application)

    winner = _commit_or_existing(db, lambda: _assessment_by_submission(db, submission_id))
    if winner:
        return _duplicate(assessmentId=winner.id)

    audit.log_webhook_received(
        db,
        "general-competencies",
        _submission_details(payload, score=score),
        person_id=person.id,
        ip_address=ip,
    )
    audit.log_assessment_completed(
        db,
        assessment,
        person.id,
        {"score": score, "passed": passed, "threshold": threshold, "subscores": data.subscores},
        ip_address=ip,
    )

    actor = _webhook_actor(ip)
    outcome = "passed" if passed else "failed"
    reason = f"General competencies {outcome} with score {score} (threshold: {threshold})"
    for application, previous in stage_changes:
        audit.log_stage_change(db, application, previous, application.current_stage, reason, actor)
    for application, previous in status_changes:
        audit.log_status_change(db, application, previous, application.status, reason, actor)

    logger.info(
        "GC webhook processed",
        person_id=person.id,
        score=score,
        threshold=threshold,
        passed=passed,
        advanced=len(stage_changes),
        rejected=len(status_changes),
        awaiting_review=len(awaiting_review),
    )

    if passed:
        message = "General competencies passed - applications advanced"
    elif status_changes:
        message = "General competencies not passed - applications rejected"
    else:
        message = "General competencies not passed - applications awaiting admin review"

    return {
        "success": True,
        "message": message,
        "data": {
            "assessmentId": assessment.id,
            "personId": person.id,
            "score": score,
            "threshold": threshold,
            "passed": passed,
            "applicationsAdvanced": [app.id for app, _ in stage_changes],
            "applicationsRejected": [app.id for app, _ in status_changes],
            "applicationsAwaitingReview": [app.id for app in awaiting_review],
        },
    }


# =============================================================================
# Specialised competencies
# =============================================================================


def _resolve_sc_application(db: Session, data) -> tuple[Application, Optional[Assessment]]:
    """Find the application an SC submission belongs to.

    Uses the hidden applicationId when present, otherwise the most recent
    pending SC assessment of the respondent's ACTIVE applications. In the
    second case the matched assessment is returned too so the submission
    completes that row.
    """
    if data.application_id:
        application = (
            db.query(Application).filter(Application.id == data.application_id).first()
            if is_valid_uuid(data.application_id)
            else None
        )
        if application is None:
            raise WebhookError("Application not found", 404)
        return application, None

    if not data.person_id and not data.respondent_id:
        raise WebhookError("Cannot resolve application: no applicationId or respondent in payload", 400)

    person = find_person_for_submission(
        db,
        person_id=data.person_id if is_valid_uuid(data.person_id) else None,
        respondent_id=data.respondent_id,
    )
    if person is None:
        raise WebhookError("Candidate not found - no person matched this respondent", 404)

    pending = (
        db.query(Assessment)
        .join(Application, Assessment.application_id == Application.id)
        .filter(Application.person_id == person.id)
        .filter(Application.status == Status.ACTIVE.value)
        .filter(Assessment.assessment_type == SPECIALIZED_COMPETENCIES)
        .filter(Assessment.completed_at.is_(None))
        .order_by(Assessment.created_at.desc())
        .all()
    )
    if not pending:
        raise WebhookError("No pending specialised competency assessment found for this candidate", 404)
    if len(pending) > 1:
        logger.warning("Multiple pending SC assessments, using most recent", person_id=person.id)

    return pending[0].application, pending[0]


def _open_sc_assessment(db: Session, application_id: str, competency_id: Optional[str]) -> Optional[Assessment]:
    """A pending (not completed) or unreviewed assessment for the competency."""
    if not competency_id:
        return None

    base = (
        db.query(Assessment)
        .filter(Assessment.application_id == application_id)
        .filter(Assessment.assessment_type == SPECIALIZED_COMPETENCIES)
        .filter(Assessment.specialised_competency_id == competency_id)
    )
    pending = base.filter(Assessment.completed_at.is_(None)).first()
    if pending:
        return pending
    return base.filter(Assessment.passed.is_(None)).first()


def handle_specialized_competencies(
    db: Session,
    payload: TallyWebhookPayload,
    ip: Optional[str] = None,
) -> dict:
    """Record an SC submission for manual review. Never changes the stage."""
    submission_id = payload.data.submission_id

    existing = _assessment_by_submission(db, submission_id)
    if existing:
        logger.info("Duplicate SC submission ignored", submission_id=sanitize_for_log(submission_id))
        return _duplicate(assessmentId=existing.id)

    data = _extract(extract_sc_assessment_data, payload)
    application, matched = _resolve_sc_application(db, data)

    def log_received() -> None:
        audit.log_webhook_received(
            db,
            "specialized-competencies",
            _submission_details(
                payload,
                specialisedCompetencyId=data.specialised_competency_id,
                position=application.position,
            ),
            person_id=application.person_id,
            application_id=application.id,
            ip_address=ip,
        )

    try:
        RECEIVE_SC.check(application)
    except TransitionError:
        log_received()
        raise WebhookError("Application is not active", 400)

    competency_id = data.specialised_competency_id if is_valid_uuid(data.specialised_competency_id) else None
    assessment = matched or _open_sc_assessment(db, application.id, competency_id)
    if assessment is None:
        assessment = Assessment(
            assessment_type=SPECIALIZED_COMPETENCIES,
            application_id=application.id,
            specialised_competency_id=competency_id,
        )
        db.add(assessment)
    else:
        logger.info("SC submission updates open assessment", assessment_id=assessment.id)
        competency_id = competency_id or assessment.specialised_competency_id

    assessment.score = int(round(data.score)) if data.score is not None else None
    assessment.passed = None
    assessment.threshold = settings.SC_THRESHOLD
    assessment.completed_at = utcnow()
    assessment.submission_url = data.submission_url
    assessment.raw_data = json.dumps({"submissionUrls": data.submission_urls, **data.raw_data})
    assessment.tally_submission_id = submission_id

    winner = _commit_or_existing(db, lambda: _assessment_by_submission(db, submission_id))
    if winner:
        return _duplicate(assessmentId=winner.id)

    log_received()
    audit.log_assessment_completed(
        db,
        assessment,
        application.person_id,
        {"specialisedCompetencyId": competency_id, "passed": None},
        ip_address=ip,
    )

    logger.info(
        "SC webhook processed",
        application_id=application.id,
        assessment_id=assessment.id,
    )

    return {
        "success": True,
        "message": "Specialised competency submission recorded - awaiting admin review",
        "data": {
            "assessmentId": assessment.id,
            "applicationId": application.id,
            "specialisedCompetencyId": competency_id,
        },
    }


# =============================================================================
# Agreement
# =============================================================================


def handle_agreement(
    db: Session,
    payload: TallyWebhookPayload,
    ip: Optional[str] = None,
) -> dict:
    """Store the signed agreement and advance to SIGNED.

    A signature arriving after the offer was withdrawn is acknowledged
    without changes, otherwise the vendor keeps retrying.
    """
    submission_id = payload.data.submission_id

    existing = _application_by_agreement_submission(db, submission_id)
    if existing:
        logger.info("Duplicate agreement submission ignored", submission_id=sanitize_for_log(submission_id))
        return _duplicate(applicationId=existing.id)

    signing = _extract(extract_agreement_data, payload)

    application = None
    if is_valid_uuid(signing.application_id):
        application = (
            db.query(Application)
            .filter(Application.id == signing.application_id)
            .with_for_update()
            .first()
        )
    if application is None:
        raise WebhookError("Application not found", 404)

    signer = f"{signing.details.legal_first_name} {signing.details.legal_last_name}"

    # The audit write commits, so it must not run while the row lock is needed
    def log_received() -> None:
        audit.log_webhook_received(
            db,
            "agreement",
            _submission_details(payload, personName=signer, position=application.position),
            person_id=application.person_id,
            application_id=application.id,
            ip_address=ip,
        )

    if application.status == Status.REJECTED.value:
        log_received()
        logger.info("Agreement received after offer withdrawal, ignored", application_id=application.id)
        return {
            "success": True,
            "message": "Offer was withdrawn - signing ignored",
            "data": {"applicationId": application.id},
        }

    try:
        SIGN_AGREEMENT.check(application)
    except TransitionError as e:
        log_received()
        raise WebhookError(e.message, 400)

    application.agreement_signed_at = utcnow()
    application.agreement_data = json.dumps(signing.details.to_json_dict())
    application.agreement_tally_submission_id = submission_id
    previous = advance_stage(application, Stage.SIGNED.value)

    winner = _commit_or_existing(db, lambda: _application_by_agreement_submission(db, submission_id))
    if winner:
        return _duplicate(applicationId=winner.id)

    log_received()
    audit.log_stage_change(
        db,
        application,
        previous,
        application.current_stage,
        f"Agreement signed by {signer}",
        _webhook_actor(ip),
    )

    logger.info("Agreement webhook processed", application_id=application.id)

    return {
        "success": True,
        "message": "Agreement signed successfully - application advanced to SIGNED",
        "data": {
            "applicationId": application.id,
            "personId": application.person_id,
            "currentStage": application.current_stage,
        },
    }
