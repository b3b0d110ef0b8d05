"""Application model: one person's candidacy for one position."""

from sqlalchemy import Column, String, Boolean, DateTime, Text, ForeignKey, Index
from sqlalchemy.orm import relationship

from recruit_api.config.database import Base

from .base import TimestampMixin, SerializableMixin, uuid_pk


class Application(Base, TimestampMixin, SerializableMixin):
    """
    Candidacy moving through the six-stage pipeline.

    current_stage only moves forward except through an admin edit. status
    is orthogonal to stage: ACTIVE while in progress, then ACCEPTED or
    REJECTED, or WITHDRAWN after a soft delete.
    """

    __tablename__ = "applications"

    id = uuid_pk()
    person_id = Column(
        String(36),
        ForeignKey("persons.id"),
        nullable=False,
    )
    position = Column(String(200), nullable=False)

    # Pipeline state
    current_stage = Column(String(50), default="APPLICATION", nullable=False)
    status = Column(String(20), default="ACTIVE", nullable=False)

    # Application package
    resume_url = Column(String(1000), nullable=True)
    academic_background = Column(Text, nullable=True)
    previous_experience = Column(Text, nullable=True)
    video_link = Column(String(1000), nullable=True)
    other_file_url = Column(String(1000), nullable=True)
    has_resume = Column(Boolean, default=False, nullable=False)
    has_academic_bg = Column(Boolean, default=False, nullable=False)
    has_video_intro = Column(Boolean, default=False, nullable=False)
    has_previous_exp = Column(Boolean, default=False, nullable=False)
    has_other_file = Column(Boolean, default=False, nullable=False)

    # Webhook dedup keys
    tally_submission_id = Column(String(100), unique=True, nullable=False)
    agreement_tally_submission_id = Column(String(100), unique=True, nullable=True)

    # Signed agreement (JSON)
    agreement_signed_at = Column(DateTime, nullable=True)
    agreement_data = Column(Text, nullable=True)

    __table_args__ = (
        Index("ix_applications_person", "person_id"),
        Index("ix_applications_stage_status", "current_stage", "status"),
        Index("ix_applications_created", "created_at"),
    )

    # Relationships
    person = relationship("Person", back_populates="applications")
    assessments = relationship("Assessment", back_populates="application")
    interviews = relationship(
        "Interview",
        back_populates="application",
        order_by="Interview.created_at",
    )
    decisions = relationship(
        "Decision",
        back_populates="application",
        order_by="Decision.decided_at",
    )

    def __repr__(self) -> str:
        return f"<Application(id={self.id}, stage={self.current_stage}, status={self.status})>"
