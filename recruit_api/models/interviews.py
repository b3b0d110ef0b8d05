"""Interview model for scheduling and interview records."""

from sqlalchemy import Column, String, DateTime, Text, ForeignKey, Index
from sqlalchemy.orm import relationship

from recruit_api.config.database import Base

from .base import SerializableMixin, uuid_pk, utcnow


class Interview(Base, SerializableMixin):
    """
    One scheduling cycle for an application.

    notes and completed_at are written together when the interview is
    completed. Rescheduling with the same interviewer updates the open
    interview in place; a new interviewer closes it as RESCHEDULED and opens
    a new one.
    """

    __tablename__ = "interviews"

    id = uuid_pk()
    application_id = Column(
        String(36),
        ForeignKey("applications.id"),
        nullable=False,
    )
    interviewer_id = Column(String(36), ForeignKey("users.id"), nullable=True)

    scheduling_link = Column(String(500), nullable=True)
    scheduled_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)

    # PENDING, ACCEPT, REJECT, RESCHEDULED
    outcome = Column(String(20), default="PENDING", nullable=False)

    email_sent_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_interviews_application", "application_id"),
        Index("ix_interviews_interviewer", "interviewer_id"),
    )

    # Relationships
    application = relationship("Application", back_populates="interviews")
    interviewer = relationship("User")

    def __repr__(self) -> str:
        return f"<Interview(id={self.id}, outcome={self.outcome})>"
