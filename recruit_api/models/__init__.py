"""SQLAlchemy ORM models for the recruitment pipeline.

All models are imported here to ensure they're registered with Base.metadata
before any database operations.
"""

# Import base first
from recruit_api.config.database import Base

# Core models
from .users import User
from .persons import Person
from .applications import Application
from .assessments import Assessment, GENERAL_COMPETENCIES, SPECIALIZED_COMPETENCIES
from .interviews import Interview
from .decisions import Decision, VALID_DECISIONS

# Catalog
from .competencies import SpecialisedCompetency

# Audit and email
from .audit_logs import AuditLog, VALID_ACTION_TYPES
from .email_log import EmailLog

__all__ = [
    "Base",
    # Core
    "User",
    "Person",
    "Application",
    "Assessment",
    "GENERAL_COMPETENCIES",
    "SPECIALIZED_COMPETENCIES",
    "Interview",
    "Decision",
    "VALID_DECISIONS",
    # Catalog
    "SpecialisedCompetency",
    # Audit and email
    "AuditLog",
    "VALID_ACTION_TYPES",
    "EmailLog",
]
