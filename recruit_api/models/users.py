"""User model for dashboard staff (admins and interviewers)."""

from sqlalchemy import Column, String, Boolean, DateTime, Index

from recruit_api.config.database import Base

from .base import TimestampMixin, SerializableMixin, uuid_pk


class User(Base, TimestampMixin, SerializableMixin):
    """
    Staff member mirrored from the identity provider.

    Access tiers come from directory groups: `has_access` lets a user work
    the pipeline, `is_admin` lets them make decisions and manage records.
    """

    __tablename__ = "users"

    id = uuid_pk()
    email = Column(String(255), unique=True, nullable=False)
    name = Column(String(255), nullable=True)
    okta_id = Column(String(100), unique=True, nullable=True)

    # Access tiers
    is_admin = Column(Boolean, default=False, nullable=False)
    has_access = Column(Boolean, default=False, nullable=False)

    # Calendar link sent to candidates when this user interviews them
    scheduling_link = Column(String(500), nullable=True)

    last_synced_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_users_is_admin", "is_admin"),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email})>"
