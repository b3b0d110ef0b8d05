"""AuditLog model: append-only record of mutations."""

from sqlalchemy import Column, String, DateTime, Text, Index

from recruit_api.config.database import Base

from .base import uuid_pk, utcnow


VALID_ACTION_TYPES = {
    "CREATE",
    "UPDATE",
    "DELETE",
    "VIEW",
    "STAGE_CHANGE",
    "STATUS_CHANGE",
    "EMAIL_SENT",
}


class AuditLog(Base):
    """
    Business audit trail (NOT for operational logs - those go to structlog).

    Entity references are plain columns so entries outlive the records
    they describe, including hard-deleted applications.
    """

    __tablename__ = "audit_logs"

    id = uuid_pk()

    # Context
    person_id = Column(String(36), nullable=True)
    application_id = Column(String(36), nullable=True)
    user_id = Column(String(36), nullable=True)

    # What happened
    action = Column(String(255), nullable=False)
    action_type = Column(String(20), nullable=False)

    # Details (JSON)
    # {"from": "APPLICATION", "to": "SPECIALIZED_COMPETENCIES", "trigger": "gc_passed"}
    details = Column(Text, nullable=True)
    ip_address = Column(String(64), nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_audit_logs_application", "application_id"),
        Index("ix_audit_logs_person", "person_id"),
        Index("ix_audit_logs_created", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id}, action_type={self.action_type})>"
