"""Assessment model for general and specialised competency results."""

from sqlalchemy import Column, String, Boolean, DateTime, Text, Integer, ForeignKey, Index
from sqlalchemy.orm import relationship

from recruit_api.config.database import Base

from .base import SerializableMixin, uuid_pk, utcnow


GENERAL_COMPETENCIES = "GENERAL_COMPETENCIES"
SPECIALIZED_COMPETENCIES = "SPECIALIZED_COMPETENCIES"


class Assessment(Base, SerializableMixin):
    """
    A scored evaluation.

    General competencies rows are person-scoped (person_id set) and passed
    is computed from the threshold. Specialised competencies rows are
    application-scoped and passed stays null until an admin reviews them.
    """

    __tablename__ = "assessments"

    id = uuid_pk()
    assessment_type = Column(String(50), nullable=False)

    # Owner: person for GC, application for SC
    person_id = Column(String(36), ForeignKey("persons.id"), nullable=True)
    application_id = Column(String(36), ForeignKey("applications.id"), nullable=True)
    specialised_competency_id = Column(
        String(36),
        ForeignKey("specialised_competencies.id"),
        nullable=True,
    )

    # Result
    score = Column(Integer, nullable=True)
    passed = Column(Boolean, nullable=True)
    threshold = Column(Integer, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    # Set on GC rows replaced by a later submission; the row stays as the dedup record
    superseded_at = Column(DateTime, nullable=True)

    # Manual review (SC only)
    reviewed_at = Column(DateTime, nullable=True)
    reviewed_by = Column(String(36), ForeignKey("users.id"), nullable=True)

    # Raw submission
    submission_url = Column(String(1000), nullable=True)
    raw_data = Column(Text, nullable=True)
    tally_submission_id = Column(String(100), unique=True, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_assessments_person_type", "person_id", "assessment_type"),
        Index("ix_assessments_application", "application_id"),
    )

    # Relationships
    person = relationship("Person", back_populates="assessments")
    application = relationship("Application", back_populates="assessments")
    specialised_competency = relationship("SpecialisedCompetency")

    def __repr__(self) -> str:
        return f"<Assessment(id={self.id}, type={self.assessment_type}, passed={self.passed})>"
