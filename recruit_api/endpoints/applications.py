"""Application endpoints: listing, detail, admin edits and pipeline actions."""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.orm import Session

from recruit_api.config.database import get_db
from recruit_api.middleware.error_handler import BadRequestError
from recruit_api.schemas.applications import (
    ApplicationListItem,
    ApplicationResponse,
    ApplicationUpdate,
    AssessmentResponse,
    AuditLogItem,
    CompleteInterviewRequest,
    DecisionActionResponse,
    DecisionRequest,
    DecisionResponse,
    EmailOutcome,
    InterviewActionResponse,
    InterviewResponse,
    RescheduleInterviewRequest,
    ReviewSCRequest,
    ReviewSCResponse,
    ScheduleInterviewRequest,
    SendEmailRequest,
    SendEmailResponse,
    WithdrawOfferRequest,
)
from recruit_api.schemas.base import ActionResponse, PaginatedResponse, PaginationMeta
from recruit_api.services import applications as application_service
from recruit_api.services import audit
from recruit_api.services.assessments import review_sc_assessment
from recruit_api.services.decisions import DecisionCommand, make_decision, withdraw_offer
from recruit_api.services.email import EmailResult, EmailService, get_email_service
from recruit_api.services.interviews import complete_interview, reschedule_interview, schedule_interview
from recruit_api.services.notifications import EmailCommand, send_application_email
from recruit_api.services.pipeline import calc_missing_fields, get_next_stage
from recruit_api.services.rbac import ActorContext, require_access, require_admin
from recruit_api.services.validation import is_valid_uuid

logger = structlog.get_logger()
router = APIRouter()


def valid_application_id(application_id: str = Path(...)) -> str:
    """Reject malformed ids before they reach a query."""
    if not is_valid_uuid(application_id):
        raise BadRequestError("Invalid application ID format")
    return application_id


def _email_outcome(result: Optional[EmailResult]) -> Optional[EmailOutcome]:
    if result is None:
        return None
    return EmailOutcome(success=result.success, queued=result.queued, email_log_id=result.email_log_id)


def _detail(application) -> ApplicationResponse:
    response = ApplicationResponse.model_validate(application)
    response.missing_fields = calc_missing_fields(application)
    next_stage = get_next_stage(application.current_stage)
    response.next_stage = next_stage.value if next_stage else None
    return response


@router.get("", response_model=PaginatedResponse[ApplicationListItem])
async def list_applications(
    db: Session = Depends(get_db),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100, alias="perPage"),
    stage: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    position: Optional[str] = Query(None),
    search: Optional[str] = Query(None, max_length=200),
    actor: ActorContext = Depends(require_access),
):
    """List applications with filters and pagination."""
    applications, total, total_pages = application_service.list_applications(
        db,
        page=page,
        per_page=per_page,
        stage=stage,
        status=status,
        position=position,
        search=search,
    )

    items = []
    for application in applications:
        item = ApplicationListItem.model_validate(application)
        item.missing_fields = calc_missing_fields(application)
        items.append(item)

    return PaginatedResponse(
        data=items,
        meta=PaginationMeta(page=page, per_page=per_page, total=total, total_pages=total_pages),
    )


@router.get("/{application_id}", response_model=ApplicationResponse)
async def get_application(
    application_id: str = Depends(valid_application_id),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_access),
):
    """Get an application with its person, assessments, interviews and decisions."""
    application = application_service.get_application_detail(db, application_id)
    response = _detail(application)
    audit.log_record_viewed(db, application, actor)
    return response


@router.patch("/{application_id}", response_model=ApplicationResponse)
async def update_application(
    data: ApplicationUpdate,
    application_id: str = Depends(valid_application_id),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_access),
):
    """Update application fields. Stage and status changes need admin."""
    changes = data.model_dump(exclude_unset=True)
    reason = changes.pop("reason", None)

    application_service.update_application(db, application_id, changes, actor, reason=reason)
    return _detail(application_service.get_application_detail(db, application_id))


@router.delete("/{application_id}", response_model=ActionResponse)
async def delete_application(
    application_id: str = Depends(valid_application_id),
    hard_delete: bool = Query(False, alias="hardDelete"),
    reason: Optional[str] = Query(None, max_length=500),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_admin),
):
    """Withdraw the application, or remove it entirely with hardDelete=true."""
    if hard_delete:
        application_service.hard_delete_application(db, application_id, actor, reason=reason)
        return ActionResponse(message="Application permanently deleted")

    application_service.withdraw_application(db, application_id, actor, reason=reason)
    return ActionResponse(message="Application withdrawn")


# =============================================================================
# Decisions
# =============================================================================


@router.post("/{application_id}/decision", response_model=DecisionActionResponse)
async def decide(
    data: DecisionRequest,
    application_id: str = Depends(valid_application_id),
    db: Session = Depends(get_db),
    email: EmailService = Depends(get_email_service),
    actor: ActorContext = Depends(require_admin),
):
    """Accept or reject an active application."""
    result = make_decision(
        db,
        application_id,
        DecisionCommand(
            decision=data.decision,
            reason=data.reason,
            notes=data.notes,
            send_email=data.send_email,
            start_date=data.start_date,
        ),
        actor,
        email,
    )

    accepted = result.decision.decision == "ACCEPT"
    return DecisionActionResponse(
        message="Application accepted - offer letter sent" if accepted else "Application rejected",
        decision=DecisionResponse.model_validate(result.decision),
        application_status=result.application.status,
        current_stage=result.application.current_stage,
        email=_email_outcome(result.email_result),
    )


@router.post("/{application_id}/withdraw-offer", response_model=DecisionActionResponse)
async def withdraw_offer_endpoint(
    data: WithdrawOfferRequest,
    application_id: str = Depends(valid_application_id),
    db: Session = Depends(get_db),
    email: EmailService = Depends(get_email_service),
    actor: ActorContext = Depends(require_admin),
):
    """Withdraw an accepted offer before the agreement is signed."""
    result = withdraw_offer(db, application_id, data.reason, data.send_email, actor, email)
    return DecisionActionResponse(
        message="Offer withdrawn",
        decision=DecisionResponse.model_validate(result.decision),
        application_status=result.application.status,
        current_stage=result.application.current_stage,
        email=_email_outcome(result.email_result),
    )


@router.post("/{application_id}/review-sc", response_model=ReviewSCResponse)
async def review_specialised_assessment(
    data: ReviewSCRequest,
    application_id: str = Depends(valid_application_id),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_admin),
):
    """Mark a specialised competency submission as passed or failed."""
    assessment = review_sc_assessment(db, application_id, data.assessment_id, data.passed, actor)
    return ReviewSCResponse(
        message=f"Assessment marked as {'passed' if assessment.passed else 'failed'}",
        assessment=AssessmentResponse.model_validate(assessment),
    )


# =============================================================================
# Interviews
# =============================================================================


@router.post("/{application_id}/schedule-interview", response_model=InterviewActionResponse)
async def schedule_interview_endpoint(
    data: ScheduleInterviewRequest,
    application_id: str = Depends(valid_application_id),
    db: Session = Depends(get_db),
    email: EmailService = Depends(get_email_service),
    actor: ActorContext = Depends(require_access),
):
    """Assign an interviewer and send the candidate their scheduling link."""
    interview, _, email_result = schedule_interview(
        db,
        application_id,
        data.interviewer_id,
        actor,
        email,
        scheduled_at=data.scheduled_at,
        send_email=data.send_email,
    )
    return InterviewActionResponse(
        message="Interview scheduled",
        interview=InterviewResponse.model_validate(interview),
        current_stage=interview.application.current_stage,
        email=_email_outcome(email_result),
    )


@router.post("/{application_id}/reschedule-interview", response_model=InterviewActionResponse)
async def reschedule_interview_endpoint(
    data: RescheduleInterviewRequest,
    application_id: str = Depends(valid_application_id),
    db: Session = Depends(get_db),
    email: EmailService = Depends(get_email_service),
    actor: ActorContext = Depends(require_access),
):
    """Refresh the open interview or hand it to another interviewer."""
    interview, email_result = reschedule_interview(
        db,
        application_id,
        data.interviewer_id,
        actor,
        email,
        scheduled_at=data.scheduled_at,
        resend_email=data.resend_email,
    )
    return InterviewActionResponse(
        message="Interview rescheduled",
        interview=InterviewResponse.model_validate(interview),
        current_stage=interview.application.current_stage,
        email=_email_outcome(email_result),
    )


@router.post("/{application_id}/complete-interview", response_model=InterviewActionResponse)
async def complete_interview_endpoint(
    data: CompleteInterviewRequest,
    application_id: str = Depends(valid_application_id),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_access),
):
    """Record interview notes and mark it completed."""
    interview = complete_interview(db, application_id, data.notes, actor)
    return InterviewActionResponse(
        message="Interview completed",
        interview=InterviewResponse.model_validate(interview),
        current_stage=interview.application.current_stage,
    )


# =============================================================================
# Email and audit
# =============================================================================


@router.post("/{application_id}/send-email", response_model=SendEmailResponse)
async def send_email(
    data: SendEmailRequest,
    application_id: str = Depends(valid_application_id),
    db: Session = Depends(get_db),
    email: EmailService = Depends(get_email_service),
    actor: ActorContext = Depends(require_access),
):
    """Send one of the manual candidate emails."""
    result = send_application_email(
        db,
        application_id,
        EmailCommand(
            template_name=data.template_name,
            competency_ids=data.competency_ids or [],
            assessment_form_url=data.assessment_form_url,
            interviewer_name=data.interviewer_name,
            scheduling_link=data.scheduling_link,
            reason=data.reason,
        ),
        actor,
        email,
    )
    return SendEmailResponse(
        message="Email queued" if result.queued else "Email sent",
        email_log_id=result.email_log_id,
        message_id=result.message_id,
        queued=result.queued,
    )


@router.get("/{application_id}/audit-log", response_model=list[AuditLogItem])
async def get_audit_log(
    application_id: str = Depends(valid_application_id),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_access),
):
    """Audit trail for an application, newest first."""
    application_service.get_application(db, application_id)
    logs = audit.get_audit_logs_for_application(db, application_id, limit=limit)
    return [AuditLogItem.model_validate(entry) for entry in logs]
