"""Audit sink.

Entries are committed in their own transaction after the business change
has been committed, so an audit failure is logged and never rolls back (or
blocks) the change it describes. Callers commit first, then log.
"""

import json
from typing import Any, Optional

import structlog
from sqlalchemy.orm import Session

from recruit_api.models import AuditLog
from recruit_api.services.rbac import ActorContext

logger = structlog.get_logger()


def _json_default(value: Any) -> str:
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def create_audit_log(
    db: Session,
    action: str,
    action_type: str,
    *,
    person_id: Optional[str] = None,
    application_id: Optional[str] = None,
    user_id: Optional[str] = None,
    details: Optional[dict] = None,
    ip_address: Optional[str] = None,
) -> Optional[str]:
    """Record an audit entry. Returns its id, or None if the write failed."""
    try:
        entry = AuditLog(
            person_id=person_id,
            application_id=application_id,
            user_id=user_id,
            action=action,
            action_type=action_type,
            details=json.dumps(details, default=_json_default) if details else None,
            ip_address=ip_address,
        )
        db.add(entry)
        db.commit()
        return entry.id
    except Exception as e:
        db.rollback()
        logger.error(
            "Failed to write audit log",
            action=action,
            action_type=action_type,
            application_id=application_id,
            error_type=type(e).__name__,
        )
        return None


def _actor_fields(actor: Optional[ActorContext]) -> dict:
    if actor is None:
        return {"user_id": None, "ip_address": None}
    return {"user_id": actor.user_id, "ip_address": actor.ip_address}


def log_person_created(db: Session, person, source: str, ip_address: Optional[str] = None):
    return create_audit_log(
        db,
        f"Person created: {person.full_name}",
        "CREATE",
        person_id=person.id,
        details={
            "email": person.email,
            "firstName": person.first_name,
            "lastName": person.last_name,
            "source": source,
        },
        ip_address=ip_address,
    )


def log_application_created(db: Session, application, details: dict, ip_address: Optional[str] = None):
    return create_audit_log(
        db,
        f"Application created for {application.position}",
        "CREATE",
        person_id=application.person_id,
        application_id=application.id,
        details={"position": application.position, **details},
        ip_address=ip_address,
    )


def log_stage_change(
    db: Session,
    application,
    from_stage: str,
    to_stage: str,
    reason: str,
    actor: Optional[ActorContext] = None,
):
    return create_audit_log(
        db,
        f"Stage changed from {from_stage} to {to_stage}",
        "STAGE_CHANGE",
        person_id=application.person_id,
        application_id=application.id,
        details={"from": from_stage, "to": to_stage, "reason": reason},
        **_actor_fields(actor),
    )


def log_status_change(
    db: Session,
    application,
    from_status: str,
    to_status: str,
    reason: str,
    actor: Optional[ActorContext] = None,
):
    return create_audit_log(
        db,
        f"Status changed from {from_status} to {to_status}",
        "STATUS_CHANGE",
        person_id=application.person_id,
        application_id=application.id,
        details={"from": from_status, "to": to_status, "reason": reason},
        **_actor_fields(actor),
    )


def log_assessment_completed(
    db: Session,
    assessment,
    person_id: str,
    details: dict,
    ip_address: Optional[str] = None,
):
    label = "General competencies" if assessment.assessment_type == "GENERAL_COMPETENCIES" else "Specialised competencies"
    return create_audit_log(
        db,
        f"{label} assessment completed",
        "UPDATE",
        person_id=person_id,
        application_id=assessment.application_id,
        details={"assessmentId": assessment.id, "assessmentType": assessment.assessment_type, **details},
        ip_address=ip_address,
    )


def log_assessment_reviewed(db: Session, application, assessment, actor: ActorContext):
    return create_audit_log(
        db,
        f"Specialised competencies assessment marked as {'passed' if assessment.passed else 'failed'}",
        "UPDATE",
        person_id=application.person_id,
        application_id=application.id,
        details={"assessmentId": assessment.id, "passed": assessment.passed, "score": assessment.score},
        **_actor_fields(actor),
    )


def log_email_sent(
    db: Session,
    template_name: str,
    recipient: str,
    person_id: Optional[str],
    application_id: Optional[str],
    user_id: Optional[str],
    email_log_id: str,
):
    return create_audit_log(
        db,
        f"Email sent: {template_name}",
        "EMAIL_SENT",
        person_id=person_id,
        application_id=application_id,
        user_id=user_id,
        details={"template": template_name, "recipient": recipient, "emailLogId": email_log_id},
    )


def log_interview_scheduled(db: Session, application, interview, details: dict, actor: ActorContext):
    return create_audit_log(
        db,
        "Interview scheduled",
        "CREATE",
        person_id=application.person_id,
        application_id=application.id,
        details={"interviewId": interview.id, "interviewerId": interview.interviewer_id, **details},
        **_actor_fields(actor),
    )


def log_interview_rescheduled(db: Session, application, interview, details: dict, actor: ActorContext):
    return create_audit_log(
        db,
        "Interview rescheduled",
        "UPDATE",
        person_id=application.person_id,
        application_id=application.id,
        details={"interviewId": interview.id, **details},
        **_actor_fields(actor),
    )


def log_interview_completed(db: Session, application, interview, actor: ActorContext):
    return create_audit_log(
        db,
        "Interview completed",
        "UPDATE",
        person_id=application.person_id,
        application_id=application.id,
        details={"interviewId": interview.id, "completedAt": interview.completed_at},
        **_actor_fields(actor),
    )


def log_decision_made(db: Session, application, decision, actor: ActorContext, details: Optional[dict] = None):
    return create_audit_log(
        db,
        f"Decision: {decision.decision}",
        "UPDATE",
        person_id=application.person_id,
        application_id=application.id,
        details={"decisionId": decision.id, "decision": decision.decision, "reason": decision.reason, **(details or {})},
        **_actor_fields(actor),
    )


def log_record_updated(db: Session, application, changes: dict, actor: ActorContext):
    return create_audit_log(
        db,
        "Application updated",
        "UPDATE",
        person_id=application.person_id,
        application_id=application.id,
        details={"changes": changes},
        **_actor_fields(actor),
    )


def log_record_viewed(db: Session, application, actor: ActorContext):
    return create_audit_log(
        db,
        "Application viewed",
        "VIEW",
        person_id=application.person_id,
        application_id=application.id,
        **_actor_fields(actor),
    )


def log_record_deleted(
    db: Session,
    snapshot: dict,
    hard_delete: bool,
    reason: Optional[str],
    actor: ActorContext,
):
    """Takes a column snapshot since a hard-deleted row can no longer be read."""
    return create_audit_log(
        db,
        "Application permanently deleted" if hard_delete else "Application withdrawn",
        "DELETE",
        person_id=snapshot["person_id"],
        application_id=snapshot["id"],
        details={
            "hardDelete": hard_delete,
            "reason": reason,
            "position": snapshot["position"],
            "stage": snapshot["current_stage"],
            "status": snapshot["status"],
        },
        **_actor_fields(actor),
    )


def log_webhook_received(
    db: Session,
    webhook_type: str,
    details: dict,
    *,
    person_id: Optional[str] = None,
    application_id: Optional[str] = None,
    ip_address: Optional[str] = None,
):
    return create_audit_log(
        db,
        f"Webhook received: {webhook_type}",
        "CREATE",
        person_id=person_id,
        application_id=application_id,
        details=details,
        ip_address=ip_address,
    )


def get_audit_logs_for_application(db: Session, application_id: str, limit: int = 100) -> list[AuditLog]:
    return (
        db.query(AuditLog)
        .filter(AuditLog.application_id == application_id)
        .order_by(AuditLog.created_at.desc())
        .limit(limit)
        .all()
    )
