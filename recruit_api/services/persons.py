"""Person lookup and creation for inbound applications."""

from typing import Optional

import structlog
from sqlalchemy.orm import Session

from recruit_api.integrations.tally import PersonData
from recruit_api.models import Application, Person
from recruit_api.services.pipeline import Status, gc_fanout_targets

logger = structlog.get_logger()

# Contact fields refreshed from each new application when supplied
_REFRESHABLE_FIELDS = (
    "first_name",
    "last_name",
    "phone_number",
    "country",
    "portfolio_link",
    "education_level",
    "tally_respondent_id",
)


def get_person_by_email(db: Session, email: str) -> Optional[Person]:
    return db.query(Person).filter(Person.email == email.strip().lower()).first()


def find_or_create_person(db: Session, data: PersonData) -> tuple[Person, bool]:
    """Find the person by email or stage a new one.

    Existing persons get their contact details refreshed; blanks in the new
    submission never overwrite stored values. Nothing is committed here.

    Returns:
        (person, created)
    """
    person = get_person_by_email(db, data.email)

    if person is None:
        person = Person(
            email=data.email.lower(),
            first_name=data.first_name,
            last_name=data.last_name,
            phone_number=data.phone_number,
            country=data.country,
            portfolio_link=data.portfolio_link,
            education_level=data.education_level,
            tally_respondent_id=data.tally_respondent_id,
        )
        db.add(person)
        db.flush()
        logger.info("Person created", person_id=person.id)
        return person, True

    for name in _REFRESHABLE_FIELDS:
        value = getattr(data, name)
        if value:
            setattr(person, name, value)
    db.flush()
    return person, False


def find_person_for_submission(
    db: Session,
    person_id: Optional[str] = None,
    respondent_id: Optional[str] = None,
) -> Optional[Person]:
    """Resolve a form respondent to a person, by id first then respondent id."""
    if person_id:
        person = db.query(Person).filter(Person.id == person_id).first()
        if person:
            return person
    if respondent_id:
        return (
            db.query(Person)
            .filter(Person.tally_respondent_id == respondent_id)
            .order_by(Person.created_at.desc())
            .first()
        )
    return None


def get_applications_awaiting_gc(db: Session, person_id: str) -> list[Application]:
    """The person's applications a GC result applies to.

    All of the person's ACTIVE applications are locked, then filtered by the
    pipeline's fan-out rule.
    """
    locked = (
        db.query(Application)
        .filter(Application.person_id == person_id)
        .filter(Application.status == Status.ACTIVE.value)
        .order_by(Application.created_at)
        .with_for_update()
        .all()
    )
    return gc_fanout_targets(locked)
