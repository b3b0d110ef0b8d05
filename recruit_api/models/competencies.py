"""Specialised competency catalog."""

from sqlalchemy import Column, String, Boolean, Text

from recruit_api.config.database import Base

from .base import TimestampMixin, SerializableMixin, uuid_pk


class SpecialisedCompetency(Base, TimestampMixin, SerializableMixin):
    """A role-specific assessment backed by its own Tally form."""

    __tablename__ = "specialised_competencies"

    id = uuid_pk()
    name = Column(String(200), nullable=False)
    category = Column(String(100), nullable=False)
    tally_form_url = Column(String(500), nullable=False)
    criterion = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<SpecialisedCompetency(id={self.id}, name={self.name})>"
