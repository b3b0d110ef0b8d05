"""Person model: a deduplicated candidate keyed by email."""

from sqlalchemy import Column, String, Boolean, DateTime, Integer
from sqlalchemy.orm import relationship

from recruit_api.config.database import Base

from .base import TimestampMixin, SerializableMixin, uuid_pk


class Person(Base, TimestampMixin, SerializableMixin):
    """
    A candidate. One person may hold many applications.

    The general competencies result lives here because the questionnaire is
    taken once per person, not once per application.
    """

    __tablename__ = "persons"

    id = uuid_pk()
    email = Column(String(255), unique=True, nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    phone_number = Column(String(50), nullable=True)
    country = Column(String(100), nullable=True)
    portfolio_link = Column(String(500), nullable=True)
    education_level = Column(String(100), nullable=True)
    tally_respondent_id = Column(String(100), nullable=True, index=True)

    # General competencies outcome (at most one per person)
    general_competencies_completed = Column(Boolean, default=False, nullable=False)
    general_competencies_score = Column(Integer, nullable=True)
    general_competencies_passed = Column(Boolean, nullable=True)
    general_competencies_completed_at = Column(DateTime, nullable=True)

    # Relationships
    applications = relationship("Application", back_populates="person")
    assessments = relationship("Assessment", back_populates="person")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return f"<Person(id={self.id}, email={self.email})>"
