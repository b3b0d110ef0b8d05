"""Manual email sends from the application detail view."""

from dataclasses import dataclass, field
from typing import Optional

import structlog
from sqlalchemy.orm import Session

from recruit_api.config.recruitment import MAX_EMAIL_REASON_LENGTH
from recruit_api.middleware.error_handler import APIError, BadRequestError, ValidationAPIError
from recruit_api.models import SpecialisedCompetency
from recruit_api.services.applications import get_application
from recruit_api.services.assessments import open_sc_assessments
from recruit_api.services.email import EmailResult, EmailService
from recruit_api.services.pipeline import SEND_EMAIL
from recruit_api.services.rbac import ActorContext
from recruit_api.services.validation import is_valid_url, is_valid_uuid, sanitize_text

logger = structlog.get_logger()

GC_INVITATION = "GC_INVITATION"
SC_INVITATION = "SC_INVITATION"
INTERVIEW_INVITATION = "INTERVIEW_INVITATION"
REJECTION = "REJECTION"

MANUAL_TEMPLATES = (GC_INVITATION, SC_INVITATION, INTERVIEW_INVITATION, REJECTION)

MAX_INTERVIEWER_NAME_LENGTH = 100


@dataclass
class EmailCommand:
    template_name: str
    competency_ids: list[str] = field(default_factory=list)
    assessment_form_url: Optional[str] = None
    interviewer_name: Optional[str] = None
    scheduling_link: Optional[str] = None
    reason: Optional[str] = None


def _active_competencies(db: Session, competency_ids: list[str]) -> list[SpecialisedCompetency]:
    ids = list(dict.fromkeys(competency_ids))
    if any(not is_valid_uuid(cid) for cid in ids):
        raise ValidationAPIError("Invalid competency ID format", field="competencyIds")

    found = (
        db.query(SpecialisedCompetency)
        .filter(SpecialisedCompetency.id.in_(ids))
        .filter(SpecialisedCompetency.is_active == True)
        .all()
    )
    if len(found) != len(ids):
        raise BadRequestError("One or more competencies were not found or are inactive")

    by_id = {competency.id: competency for competency in found}
    return [by_id[cid] for cid in ids]


def send_application_email(
    db: Session,
    application_id: str,
    command: EmailCommand,
    actor: ActorContext,
    email: EmailService,
) -> EmailResult:
    """Validate the template's inputs, then send.

    Unlike pipeline side effects, a send that neither went out nor got
    queued is reported to the caller as an error.
    """
    if command.template_name not in MANUAL_TEMPLATES:
        raise ValidationAPIError(
            f"Invalid template. Must be one of: {', '.join(MANUAL_TEMPLATES)}",
            field="templateName",
        )

    application = get_application(db, application_id)
    SEND_EMAIL.check(application)
    person = application.person

    if command.template_name == GC_INVITATION:
        if person.general_competencies_completed:
            raise BadRequestError("Candidate has already completed the general competencies assessment")
        result = email.send_gc_invitation(person, application, sent_by=actor.user_id)

    elif command.template_name == SC_INVITATION:
        if command.competency_ids:
            competencies = _active_competencies(db, command.competency_ids)
            open_sc_assessments(db, application, competencies)
            db.commit()
            links = [(c.name, c.tally_form_url) for c in competencies]
        elif command.assessment_form_url:
            if not is_valid_url(command.assessment_form_url):
                raise ValidationAPIError("Invalid assessmentFormUrl format", field="assessmentFormUrl")
            links = [("Role-specific assessment", command.assessment_form_url.strip())]
        else:
            raise ValidationAPIError(
                "competencyIds or assessmentFormUrl is required for SC_INVITATION",
                field="competencyIds",
            )
        result = email.send_sc_invitation(person, application, links, sent_by=actor.user_id)

    elif command.template_name == INTERVIEW_INVITATION:
        interviewer_name = sanitize_text(command.interviewer_name, MAX_INTERVIEWER_NAME_LENGTH)
        if not interviewer_name:
            raise ValidationAPIError("interviewerName is required for INTERVIEW_INVITATION", field="interviewerName")
        if not is_valid_url(command.scheduling_link):
            raise ValidationAPIError("A valid schedulingLink is required for INTERVIEW_INVITATION", field="schedulingLink")
        result = email.send_interview_invitation(
            person, application, interviewer_name, command.scheduling_link.strip(), sent_by=actor.user_id,
        )

    else:
        reason = sanitize_text(command.reason, MAX_EMAIL_REASON_LENGTH) or None
        result = email.send_rejection(person, application, reason, sent_by=actor.user_id)

    if not result.success and not result.queued:
        logger.error(
            "Manual email failed",
            application_id=application.id,
            template=command.template_name,
            email_log_id=result.email_log_id,
        )
        raise APIError(
            "Failed to send email",
            code="EMAIL_SEND_FAILED",
            status_code=500,
            details={"emailLogId": result.email_log_id},
        )

    logger.info(
        "Manual email sent",
        application_id=application.id,
        template=command.template_name,
        queued=result.queued,
        sent_by=actor.user_id,
    )
    return result
