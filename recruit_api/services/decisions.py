"""Accept/reject decisions and offer withdrawal.

Reasons are mandatory for every decision and are sanitized before the
precondition checks run; a reason that is empty after sanitizing rejects
the request without touching the application.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

import structlog
from sqlalchemy.orm import Session

from recruit_api.config.recruitment import MAX_NOTES_LENGTH, MAX_REASON_LENGTH, OFFER_WITHDRAWN_NOTE
from recruit_api.config.settings import settings
from recruit_api.middleware.error_handler import BadRequestError, ValidationAPIError
from recruit_api.models import VALID_DECISIONS, Application, Decision
from recruit_api.services import audit
from recruit_api.services.applications import get_application, has_decision
from recruit_api.services.email import EmailResult, EmailService, send_best_effort
from recruit_api.services.pipeline import (
    DECIDE,
    WITHDRAW_OFFER,
    Stage,
    Status,
    advance_stage,
    set_status,
)
from recruit_api.services.rbac import ActorContext
from recruit_api.services.validation import sanitize_text

logger = structlog.get_logger()


@dataclass
class DecisionCommand:
    decision: str  # ACCEPT or REJECT
    reason: Optional[str]
    notes: Optional[str] = None
    send_email: bool = True
    start_date: Optional[date] = None


@dataclass
class DecisionResult:
    decision: Decision
    application: Application
    email_result: Optional[EmailResult] = None


def require_reason(reason: Optional[str], max_length: int = MAX_REASON_LENGTH) -> str:
    """Sanitized reason, or ValidationAPIError when nothing is left."""
    cleaned = sanitize_text(reason, max_length)
    if not cleaned:
        raise ValidationAPIError("A reason is required for this decision", field="reason")
    return cleaned


def default_start_date() -> date:
    return date.today() + timedelta(days=settings.OFFER_START_DATE_OFFSET_DAYS)


def make_decision(
    db: Session,
    application_id: str,
    command: DecisionCommand,
    actor: ActorContext,
    email: EmailService,
) -> DecisionResult:
    """Record an ACCEPT or REJECT decision on an ACTIVE application.

    ACCEPT moves the application to AGREEMENT as ACCEPTED and always sends
    the offer letter. REJECT sets REJECTED, leaves the stage alone and sends
    the rejection email when asked.
    """
    if command.decision not in VALID_DECISIONS:
        raise ValidationAPIError(
            f"Invalid decision. Must be one of: {', '.join(sorted(VALID_DECISIONS))}",
            field="decision",
        )
    reason = require_reason(command.reason)
    notes = sanitize_text(command.notes, MAX_NOTES_LENGTH) or None

    if not actor.user_id:
        raise BadRequestError("User profile not found")

    application = get_application(db, application_id, lock=True)
    DECIDE.check(application, has_decision=has_decision(db, application.id))

    accepted = command.decision == "ACCEPT"

    decision = Decision(
        application_id=application.id,
        decision=command.decision,
        reason=reason,
        notes=notes,
        decided_by=actor.user_id,
    )
    db.add(decision)

    previous_status = set_status(application, Status.ACCEPTED.value if accepted else Status.REJECTED.value)
    previous_stage = advance_stage(application, Stage.AGREEMENT.value) if accepted else None

    db.commit()

    audit.log_decision_made(db, application, decision, actor)
    audit.log_status_change(
        db, application, previous_status, application.status, f"Decision: {command.decision}", actor,
    )
    if previous_stage:
        audit.log_stage_change(
            db, application, previous_stage, application.current_stage,
            "Auto-advanced: application accepted", actor,
        )

    person = application.person
    email_result = None
    if accepted:
        # The offer letter carries the agreement link, so it is never skipped
        email_result = send_best_effort(
            email, "send_offer_letter", person, application,
            command.start_date or default_start_date(), sent_by=actor.user_id,
        )
    elif command.send_email:
        email_result = send_best_effort(
            email, "send_rejection", person, application, reason, sent_by=actor.user_id,
        )

    logger.info(
        "Decision recorded",
        application_id=application.id,
        decision=command.decision,
        decided_by=actor.user_id,
    )
    return DecisionResult(decision=decision, application=application, email_result=email_result)


def withdraw_offer(
    db: Session,
    application_id: str,
    reason: Optional[str],
    send_email: bool,
    actor: ActorContext,
    email: EmailService,
) -> DecisionResult:
    """Withdraw an accepted offer at the AGREEMENT stage.

    Records a second REJECT decision and moves ACCEPTED to REJECTED, the
    only backward status move. The stage stays at AGREEMENT.
    """
    reason = require_reason(reason)

    if not actor.user_id:
        raise BadRequestError("User profile not found")

    application = get_application(db, application_id, lock=True)
    WITHDRAW_OFFER.check(application)

    decision = Decision(
        application_id=application.id,
        decision="REJECT",
        reason=reason,
        notes=OFFER_WITHDRAWN_NOTE,
        decided_by=actor.user_id,
    )
    db.add(decision)
    previous_status = set_status(application, Status.REJECTED.value)

    db.commit()

    audit.log_decision_made(db, application, decision, actor, details={"offerWithdrawn": True})
    audit.log_status_change(
        db, application, previous_status, application.status, f"Offer withdrawn: {reason}", actor,
    )

    email_result = None
    if send_email:
        email_result = send_best_effort(
            email, "send_rejection", application.person, application, reason, sent_by=actor.user_id,
        )

    logger.info("Offer withdrawn", application_id=application.id, withdrawn_by=actor.user_id)
    return DecisionResult(decision=decision, application=application, email_result=email_result)
