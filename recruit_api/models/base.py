"""Shared column helpers and mixins for models."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String
from sqlalchemy.orm import declared_attr


def new_uuid() -> str:
    """Generate a string UUID primary key."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how the database stores datetimes."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def uuid_pk() -> Column:
    return Column(String(36), primary_key=True, default=new_uuid)


class TimestampMixin:
    """Mixin that adds created_at and updated_at columns."""

    @declared_attr
    def created_at(cls):
        return Column(DateTime, default=utcnow, nullable=False)

    @declared_attr
    def updated_at(cls):
        return Column(DateTime, default=utcnow, onupdate=utcnow, nullable=True)


class SerializableMixin:
    """Readable repr keyed on the primary key."""

    def __repr__(self) -> str:
        pk = getattr(self, "id", None)
        return f"<{self.__class__.__name__}(id={pk})>"
