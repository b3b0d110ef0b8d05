"""EmailLog model for email send tracking."""

from sqlalchemy import Column, String, DateTime, Text, Index

from recruit_api.config.database import Base

from .base import uuid_pk, utcnow


class EmailLog(Base):
    """
    Log of outgoing emails for tracking and retries.

    Status: PENDING, QUEUED (rate limited), SENT, FAILED.
    """

    __tablename__ = "email_log"

    id = uuid_pk()

    # Context
    person_id = Column(String(36), nullable=True)
    application_id = Column(String(36), nullable=True)

    # Recipient and content
    recipient = Column(String(255), nullable=False)
    template_name = Column(String(100), nullable=False)
    subject = Column(String(500), nullable=True)
    variables = Column(Text, nullable=True)  # JSON, used for retries

    status = Column(String(20), default="PENDING", nullable=False)
    message_id = Column(String(255), nullable=True)
    error = Column(Text, nullable=True)

    # Tracking
    sent_by = Column(String(36), nullable=True)
    sent_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_email_log_status_created", "status", "created_at"),
        Index("ix_email_log_application", "application_id"),
    )
