"""Interview scheduling, rescheduling and completion."""

from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy.orm import Session

from recruit_api.config.recruitment import MAX_INTERVIEW_NOTES_LENGTH
from recruit_api.middleware.error_handler import BadRequestError, NotFoundError, TransitionError, ValidationAPIError
from recruit_api.models import SPECIALIZED_COMPETENCIES, Application, Assessment, Interview, User
from recruit_api.models.base import utcnow
from recruit_api.services import audit
from recruit_api.services.applications import get_application
from recruit_api.services.email import EmailResult, EmailService, send_best_effort
from recruit_api.services.pipeline import (
    RESCHEDULE_INTERVIEW,
    SCHEDULE_INTERVIEW,
    Stage,
    advance_stage,
    stage_order,
)
from recruit_api.services.rbac import ActorContext
from recruit_api.services.validation import is_valid_url, is_valid_uuid, sanitize_text

logger = structlog.get_logger()

PENDING = "PENDING"
RESCHEDULED = "RESCHEDULED"


def _to_utc_naive(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def get_interviewer(db: Session, interviewer_id: str) -> User:
    """Interviewer with a usable scheduling link."""
    if not is_valid_uuid(interviewer_id):
        raise ValidationAPIError("Invalid interviewerId format", field="interviewerId")

    interviewer = db.query(User).filter(User.id == interviewer_id).first()
    if interviewer is None:
        raise NotFoundError("Interviewer", interviewer_id)

    if not interviewer.scheduling_link:
        raise BadRequestError(
            "Interviewer has not configured their scheduling link. Please update their profile first."
        )
    if not is_valid_url(interviewer.scheduling_link):
        raise BadRequestError("Interviewer has an invalid scheduling link configured")
    return interviewer


def get_open_interview(db: Session, application_id: str) -> Optional[Interview]:
    """Latest interview that is neither completed nor superseded."""
    return (
        db.query(Interview)
        .filter(Interview.application_id == application_id)
        .filter(Interview.completed_at.is_(None))
        .filter(Interview.outcome != RESCHEDULED)
        .order_by(Interview.created_at.desc())
        .first()
    )


def _validate_scheduled_at(scheduled_at: Optional[datetime]) -> Optional[datetime]:
    scheduled_at = _to_utc_naive(scheduled_at)
    if scheduled_at is not None and scheduled_at <= utcnow():
        raise ValidationAPIError("scheduledAt must be in the future", field="scheduledAt")
    return scheduled_at


def _require_sc_passed(db: Session, application: Application) -> None:
    """Entering INTERVIEW needs a specialised assessment marked as passed."""
    passed = (
        db.query(Assessment.id)
        .filter(Assessment.application_id == application.id)
        .filter(Assessment.assessment_type == SPECIALIZED_COMPETENCIES)
        .filter(Assessment.passed == True)
        .first()
    )
    if passed is None:
        raise TransitionError(
            "assessment",
            "a passed specialised competencies assessment",
            "none",
            message="Cannot schedule an interview: no specialised competencies assessment has been marked as passed",
        )


def _interviewer_name(interviewer: User) -> str:
    return interviewer.name or interviewer.email


def _send_invitation(
    email: EmailService,
    application: Application,
    interviewer: User,
    actor: ActorContext,
) -> Optional[EmailResult]:
    return send_best_effort(
        email,
        "send_interview_invitation",
        application.person,
        application,
        _interviewer_name(interviewer),
        interviewer.scheduling_link,
        sent_by=actor.user_id,
    )


def schedule_interview(
    db: Session,
    application_id: str,
    interviewer_id: str,
    actor: ActorContext,
    email: EmailService,
    scheduled_at: Optional[datetime] = None,
    send_email: bool = True,
) -> tuple[Interview, Optional[str], Optional[EmailResult]]:
    """Open an interview and move the application to INTERVIEW.

    Returns:
        (interview, previous stage if it moved, email result)
    """
    application = get_application(db, application_id, lock=True)
    SCHEDULE_INTERVIEW.check(application)

    interviewer = get_interviewer(db, interviewer_id)
    scheduled_at = _validate_scheduled_at(scheduled_at)

    if stage_order(application.current_stage) < Stage.INTERVIEW.order:
        _require_sc_passed(db, application)
    previous_stage = advance_stage(application, Stage.INTERVIEW.value)

    interview = Interview(
        application_id=application.id,
        interviewer_id=interviewer.id,
        scheduling_link=interviewer.scheduling_link,
        scheduled_at=scheduled_at,
        outcome=PENDING,
        email_sent_at=utcnow() if send_email else None,
    )
    db.add(interview)
    db.commit()

    if previous_stage:
        audit.log_stage_change(
            db, application, previous_stage, application.current_stage,
            "Interview scheduled", actor,
        )
    audit.log_interview_scheduled(
        db, application, interview,
        {"schedulingLink": interview.scheduling_link, "scheduledAt": scheduled_at},
        actor,
    )

    email_result = _send_invitation(email, application, interviewer, actor) if send_email else None

    logger.info(
        "Interview scheduled",
        application_id=application.id,
        interview_id=interview.id,
        interviewer_id=interviewer.id,
        stage_changed=previous_stage is not None,
    )
    return interview, previous_stage, email_result


def reschedule_interview(
    db: Session,
    application_id: str,
    interviewer_id: str,
    actor: ActorContext,
    email: EmailService,
    scheduled_at: Optional[datetime] = None,
    resend_email: bool = True,
) -> tuple[Interview, Optional[EmailResult]]:
    """Refresh or replace the open interview.

    The same interviewer updates the open record in place. A different
    interviewer marks it RESCHEDULED and opens a new one, so the history
    of who was assigned is kept.
    """
    application = get_application(db, application_id, lock=True)
    RESCHEDULE_INTERVIEW.check(application)

    current = get_open_interview(db, application.id)
    if current is None:
        raise NotFoundError("Open interview", application.id)

    interviewer = get_interviewer(db, interviewer_id)
    scheduled_at = _validate_scheduled_at(scheduled_at)
    previous_interviewer_id = current.interviewer_id
    sent_at = utcnow() if resend_email else None

    if current.interviewer_id == interviewer.id:
        interview = current
        interview.scheduling_link = interviewer.scheduling_link
        if scheduled_at is not None:
            interview.scheduled_at = scheduled_at
        if sent_at:
            interview.email_sent_at = sent_at
    else:
        current.outcome = RESCHEDULED
        interview = Interview(
            application_id=application.id,
            interviewer_id=interviewer.id,
            scheduling_link=interviewer.scheduling_link,
            scheduled_at=scheduled_at,
            outcome=PENDING,
            email_sent_at=sent_at,
        )
        db.add(interview)

    db.commit()

    audit.log_interview_rescheduled(
        db, application, interview,
        {
            "previousInterviewerId": previous_interviewer_id,
            "interviewerId": interviewer.id,
            "replacedInterviewId": current.id if interview is not current else None,
            "emailResent": resend_email,
        },
        actor,
    )

    email_result = _send_invitation(email, application, interviewer, actor) if resend_email else None

    logger.info(
        "Interview rescheduled",
        application_id=application.id,
        interview_id=interview.id,
        interviewer_changed=interview is not current,
    )
    return interview, email_result


def complete_interview(
    db: Session,
    application_id: str,
    notes: Optional[str],
    actor: ActorContext,
) -> Interview:
    """Record notes and completion together. The stage does not change."""
    cleaned = sanitize_text(notes, MAX_INTERVIEW_NOTES_LENGTH)
    if not cleaned:
        raise ValidationAPIError("Interview notes are required", field="notes")

    application = get_application(db, application_id, lock=True)
    interview = get_open_interview(db, application.id)
    if interview is None:
        raise NotFoundError("Open interview", application.id)

    interview.notes = cleaned
    interview.completed_at = utcnow()
    db.commit()

    audit.log_interview_completed(db, application, interview, actor)
    logger.info("Interview completed", application_id=application.id, interview_id=interview.id)
    return interview
