"""Decision model for terminal accept/reject determinations."""

from sqlalchemy import Column, String, DateTime, Text, ForeignKey, Index
from sqlalchemy.orm import relationship

from recruit_api.config.database import Base

from .base import SerializableMixin, uuid_pk, utcnow


VALID_DECISIONS = {"ACCEPT", "REJECT"}


class Decision(Base, SerializableMixin):
    """
    Accept or reject determination with its mandatory reason.

    Normally one per application. Withdrawing an accepted offer records a
    second REJECT decision whose notes mark it as the withdrawal.
    """

    __tablename__ = "decisions"

    id = uuid_pk()
    application_id = Column(
        String(36),
        ForeignKey("applications.id"),
        nullable=False,
    )

    decision = Column(String(20), nullable=False)  # ACCEPT, REJECT
    reason = Column(Text, nullable=False)
    notes = Column(Text, nullable=True)

    # Who decided
    decided_by = Column(String(36), ForeignKey("users.id"), nullable=True)
    decided_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_decisions_application", "application_id"),
        Index("ix_decisions_decided_at", "decided_at"),
    )

    # Relationships
    application = relationship("Application", back_populates="decisions")

    def __repr__(self) -> str:
        return f"<Decision(id={self.id}, decision={self.decision})>"
