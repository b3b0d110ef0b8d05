"""Pydantic schemas for Application endpoints and their actions."""

import json
from datetime import date, datetime
from typing import Any, Optional

from pydantic import field_validator

from .base import ActionResponse, CamelCommand, CamelModel


def _parse_json(value: Any) -> Any:
    """Stored JSON text columns are returned as objects."""
    if value is None or isinstance(value, (dict, list)):
        return value
    try:
        return json.loads(value)
    except (TypeError, ValueError):
        return None


# =============================================================================
# Read models
# =============================================================================


class PersonSummary(CamelModel):
    """Person fields shown alongside an application."""

    id: str
    email: str
    first_name: str
    last_name: str
    general_competencies_completed: bool = False
    general_competencies_score: Optional[int] = None
    general_competencies_passed: Optional[bool] = None


class PersonResponse(PersonSummary):
    phone_number: Optional[str] = None
    country: Optional[str] = None
    portfolio_link: Optional[str] = None
    education_level: Optional[str] = None
    general_competencies_completed_at: Optional[datetime] = None
    created_at: datetime


class AssessmentResponse(CamelModel):
    id: str
    assessment_type: str
    specialised_competency_id: Optional[str] = None
    score: Optional[int] = None
    passed: Optional[bool] = None
    threshold: Optional[int] = None
    completed_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None
    submission_url: Optional[str] = None
    raw_data: Optional[Any] = None
    created_at: datetime

    @field_validator("raw_data", mode="before")
    @classmethod
    def parse_raw_data(cls, v: Any) -> Any:
        return _parse_json(v)


class InterviewResponse(CamelModel):
    id: str
    interviewer_id: Optional[str] = None
    scheduling_link: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    notes: Optional[str] = None
    outcome: str
    email_sent_at: Optional[datetime] = None
    created_at: datetime


class DecisionResponse(CamelModel):
    id: str
    decision: str
    reason: str
    notes: Optional[str] = None
    decided_by: Optional[str] = None
    decided_at: datetime


class ApplicationListItem(CamelModel):
    """Schema for application in list response."""

    id: str
    person_id: str
    position: str
    current_stage: str
    status: str
    person: PersonSummary
    missing_fields: list[str] = []
    created_at: datetime
    updated_at: Optional[datetime] = None


class ApplicationResponse(CamelModel):
    """Full application with its children."""

    id: str
    person_id: str
    position: str
    current_stage: str
    status: str
    resume_url: Optional[str] = None
    academic_background: Optional[str] = None
    previous_experience: Optional[str] = None
    video_link: Optional[str] = None
    other_file_url: Optional[str] = None
    has_resume: bool = False
    has_academic_bg: bool = False
    has_video_intro: bool = False
    has_previous_exp: bool = False
    has_other_file: bool = False
    agreement_signed_at: Optional[datetime] = None
    agreement_data: Optional[dict] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    person: PersonResponse
    assessments: list[AssessmentResponse] = []
    interviews: list[InterviewResponse] = []
    decisions: list[DecisionResponse] = []
    missing_fields: list[str] = []
    next_stage: Optional[str] = None

    @field_validator("agreement_data", mode="before")
    @classmethod
    def parse_agreement_data(cls, v: Any) -> Any:
        return _parse_json(v)


# =============================================================================
# Commands
# =============================================================================


class ApplicationUpdate(CamelCommand):
    """Editable application fields. currentStage and status are admin-only."""

    position: Optional[str] = None
    resume_url: Optional[str] = None
    video_link: Optional[str] = None
    other_file_url: Optional[str] = None
    academic_background: Optional[str] = None
    previous_experience: Optional[str] = None
    current_stage: Optional[str] = None
    status: Optional[str] = None
    # Audit note for stage/status overrides
    reason: Optional[str] = None


class DecisionRequest(CamelCommand):
    decision: str
    reason: Optional[str] = None
    notes: Optional[str] = None
    send_email: bool = True
    start_date: Optional[date] = None


class WithdrawOfferRequest(CamelCommand):
    reason: Optional[str] = None
    send_email: bool = True


class ReviewSCRequest(CamelCommand):
    assessment_id: str
    passed: bool


class ScheduleInterviewRequest(CamelCommand):
    interviewer_id: str
    scheduled_at: Optional[datetime] = None
    send_email: bool = True


class RescheduleInterviewRequest(CamelCommand):
    interviewer_id: str
    scheduled_at: Optional[datetime] = None
    resend_email: bool = True


class CompleteInterviewRequest(CamelCommand):
    notes: Optional[str] = None


class SendEmailRequest(CamelCommand):
    """Manual email send. Which extra fields apply depends on the template."""

    template_name: str
    competency_ids: Optional[list[str]] = None
    assessment_form_url: Optional[str] = None
    interviewer_name: Optional[str] = None
    scheduling_link: Optional[str] = None
    reason: Optional[str] = None

# =============================================================================
# Action responses
# =============================================================================


class EmailOutcome(CamelModel):
    success: bool
    queued: bool = False
    email_log_id: Optional[str] = None


class DecisionActionResponse(ActionResponse):
    decision: DecisionResponse
    application_status: str
    current_stage: str
    email: Optional[EmailOutcome] = None


class InterviewActionResponse(ActionResponse):
    interview: InterviewResponse
    current_stage: str
    email: Optional[EmailOutcome] = None


class ReviewSCResponse(ActionResponse):
    assessment: AssessmentResponse


class SendEmailResponse(ActionResponse):
    email_log_id: Optional[str] = None
    message_id: Optional[str] = None
    queued: bool = False


class AuditLogItem(CamelModel):
    id: str
    action: str
    action_type: str
    user_id: Optional[str] = None
    person_id: Optional[str] = None
    application_id: Optional[str] = None
    details: Optional[Any] = None
    ip_address: Optional[str] = None
    created_at: datetime

    @field_validator("details", mode="before")
    @classmethod
    def parse_details(cls, v: Any) -> Any:
        return _parse_json(v)
