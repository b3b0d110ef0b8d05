"""Shared fixtures and utilities for tests."""

import json
import os
import uuid

# Settings are read at import time, so the environment comes first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["DEBUG"] = "false"
os.environ["SECRET_KEY"] = "test-secret-key-for-session-tokens"
os.environ["WEBHOOK_SECRET"] = "test-webhook-secret"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
from fastapi.testclient import TestClient

from recruit_api import models  # noqa: F401
from recruit_api.config.database import Base, SessionLocal, engine, get_db
from recruit_api.integrations.ses import SESError
from recruit_api.main import app
from recruit_api.middleware.security import rate_limiter
from recruit_api.models import SPECIALIZED_COMPETENCIES, Application, Assessment, Person, SpecialisedCompetency, User
from recruit_api.models.base import utcnow
from recruit_api.services.email import EmailService, email_rate_limiter, get_email_service
from recruit_api.services.token import create_token
from recruit_api.services.webhook_security import compute_signature, webhook_rate_limiter

WEBHOOK_SECRET = "test-webhook-secret"
WEBHOOK_IP = "203.0.113.10"


class FakeSESSender:
    """Stands in for SESService; records messages instead of calling AWS."""

    def __init__(self):
        self.sent = []
        self.fail = False

    def send_email(self, to, subject, html_body, **kwargs):
        if self.fail:
            raise SESError("Email send failed: ClientError")
        self.sent.append({"to": to, "subject": subject, "html": html_body})
        return f"msg-{len(self.sent)}"


@pytest.fixture(autouse=True)
def reset_rate_limiters():
    rate_limiter.reset()
    webhook_rate_limiter.reset()
    email_rate_limiter.reset()
    yield


@pytest.fixture
def db_session():
    """Fresh in-memory schema per test."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def ses_sender():
    return FakeSESSender()


@pytest.fixture
def email_service(db_session, ses_sender):
    return EmailService(db_session, sender=ses_sender)


@pytest.fixture
def client(db_session, email_service):
    """TestClient wired to the test session and the fake SES sender."""
    app.dependency_overrides[get_db] = lambda: db_session
    app.dependency_overrides[get_email_service] = lambda: email_service
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# =============================================================================
# Users and sessions
# =============================================================================


def _make_user(db, email, is_admin=False, has_access=False, scheduling_link=None, name=None):
    user = User(
        email=email,
        name=name,
        is_admin=is_admin,
        has_access=has_access,
        scheduling_link=scheduling_link,
    )
    db.add(user)
    db.commit()
    return user


def _headers_for(user) -> dict:
    token = create_token({
        "sub": user.id,
        "email": user.email,
        "dbUserId": user.id,
        "isAdmin": user.is_admin,
        "hasAccess": user.has_access,
    })
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_user(db_session):
    return _make_user(db_session, "admin@example.org", is_admin=True, has_access=True, name="Grace Admin")


@pytest.fixture
def staff_user(db_session):
    return _make_user(db_session, "staff@example.org", has_access=True, name="Sam Staff")


@pytest.fixture
def interviewer(db_session):
    return _make_user(
        db_session,
        "interviewer@example.org",
        has_access=True,
        name="Ian Interviewer",
        scheduling_link="https://cal.example.org/ian",
    )


@pytest.fixture
def admin_headers(admin_user):
    return _headers_for(admin_user)


@pytest.fixture
def staff_headers(staff_user):
    return _headers_for(staff_user)


@pytest.fixture
def no_access_headers(db_session):
    return _headers_for(_make_user(db_session, "viewer@example.org"))


# =============================================================================
# Records
# =============================================================================


@pytest.fixture
def make_person(db_session):
    def _make(email=None, gc_passed=None, respondent_id=None, **kwargs):
        person = Person(
            email=email or f"candidate-{uuid.uuid4().hex[:8]}@example.com",
            first_name=kwargs.pop("first_name", "Ada"),
            last_name=kwargs.pop("last_name", "Lovelace"),
            tally_respondent_id=respondent_id,
            general_competencies_completed=gc_passed is not None,
            general_competencies_passed=gc_passed,
            general_competencies_score=None if gc_passed is None else (85 if gc_passed else 40),
            general_competencies_completed_at=None if gc_passed is None else utcnow(),
            **kwargs,
        )
        db_session.add(person)
        db_session.commit()
        return person
    return _make


@pytest.fixture
def make_application(db_session, make_person):
    def _make(stage="APPLICATION", status="ACTIVE", person=None, position="Software Engineer", **kwargs):
        application = Application(
            person_id=(person or make_person()).id,
            position=position,
            current_stage=stage,
            status=status,
            tally_submission_id=f"sub-{uuid.uuid4().hex[:10]}",
            **kwargs,
        )
        db_session.add(application)
        db_session.commit()
        return application
    return _make


@pytest.fixture
def make_competency(db_session):
    def _make(name="Python Engineering", category="Technical", is_active=True):
        competency = SpecialisedCompetency(
            name=name,
            category=category,
            tally_form_url="https://tally.so/r/python-eng",
            is_active=is_active,
        )
        db_session.add(competency)
        db_session.commit()
        return competency
    return _make


@pytest.fixture
def make_sc_assessment(db_session):
    def _make(application, competency=None, completed=True, passed=None):
        assessment = Assessment(
            assessment_type=SPECIALIZED_COMPETENCIES,
            application_id=application.id,
            specialised_competency_id=competency.id if competency else None,
            score=80 if completed else None,
            threshold=75,
            completed_at=utcnow() if completed else None,
            passed=passed,
        )
        db_session.add(assessment)
        db_session.commit()
        return assessment
    return _make


# =============================================================================
# Tally webhooks
# =============================================================================


def tally_field(key, label, value, field_type="INPUT_TEXT", options=None):
    data = {"key": key, "label": label, "type": field_type, "value": value}
    if options is not None:
        data["options"] = options
    return data


def tally_payload(fields, submission_id=None, respondent_id="resp-1", form_name="Form"):
    return {
        "eventId": f"evt-{uuid.uuid4().hex[:8]}",
        "eventType": "FORM_RESPONSE",
        "createdAt": "2026-10-18T10:00:00.000Z",
        "data": {
            "responseId": f"resp-{uuid.uuid4().hex[:8]}",
            "submissionId": submission_id or f"sub-{uuid.uuid4().hex[:10]}",
            "respondentId": respondent_id,
            "formId": "form-1",
            "formName": form_name,
            "createdAt": "2026-10-18T10:00:00.000Z",
            "fields": fields,
        },
    }


@pytest.fixture
def application_payload():
    def _build(email="ada@example.com", first_name="Ada", last_name="Lovelace",
               position="Software Engineer", submission_id=None, package=None, resume=True):
        fields = [
            tally_field("question_eaYYNE", "Email", email, "INPUT_EMAIL"),
            tally_field("question_qRkkYd", "First Name", first_name),
            tally_field("question_Q7OOxA", "Last Name", last_name),
            tally_field("question_97oo61", "Phone", "+1 555 0100"),
            tally_field("question_KVavqX", "Position", position),
            tally_field(
                "question_6Zpp1O",
                "Package Contents",
                package if package is not None else [
                    "f0b59c5e-a761-422d-9f4f-b0877d763e31",
                    "08626196-8186-4941-b743-f71b94eaee6f",
                ],
                "CHECKBOXES",
            ),
        ]
        if resume:
            fields.append(tally_field(
                "question_7NppJ9",
                "Resume",
                [{"id": "f1", "name": "cv.pdf", "url": "https://storage.tally.so/cv.pdf", "mimeType": "application/pdf"}],
                "FILE_UPLOAD",
            ))
        return tally_payload(fields, submission_id=submission_id, form_name="Application")
    return _build


@pytest.fixture
def gc_payload():
    def _build(person_id, score, submission_id=None):
        fields = [
            tally_field("question_PzkEpx", "who", person_id, "HIDDEN_FIELDS"),
            tally_field("question_Q7k02g", "score", score, "CALCULATED_FIELDS"),
            tally_field("question_LdPQ1J", "cultureScore", 30, "CALCULATED_FIELDS"),
            tally_field("question_pLDlxP", "situationalScore", 25, "CALCULATED_FIELDS"),
            tally_field("question_J2ON0d", "digitalScore", 20, "CALCULATED_FIELDS"),
        ]
        return tally_payload(fields, submission_id=submission_id, form_name="General Competencies")
    return _build


@pytest.fixture
def sc_payload():
    def _build(application_id=None, competency_id=None, person_id=None, respondent_id="resp-1", submission_id=None):
        fields = [
            tally_field(
                "question_Upload",
                "Upload your work",
                [{"id": "w1", "name": "work.zip", "url": "https://storage.tally.so/work.zip", "mimeType": "application/zip"}],
                "FILE_UPLOAD",
            ),
        ]
        if application_id:
            fields.append(tally_field("question_AppId", "applicationId", application_id, "HIDDEN_FIELDS"))
        if competency_id:
            fields.append(tally_field("question_ScId", "scId", competency_id, "HIDDEN_FIELDS"))
        if person_id:
            fields.append(tally_field("question_PzkEpx", "who", person_id, "HIDDEN_FIELDS"))
        return tally_payload(
            fields,
            submission_id=submission_id,
            respondent_id=respondent_id,
            form_name="Specialised Competencies",
        )
    return _build


@pytest.fixture
def agreement_payload():
    def _build(application_id, submission_id=None):
        fields = [
            tally_field("question_BGLBxe", "applicationId", application_id, "HIDDEN_FIELDS"),
            tally_field("question_9Zx9jK", "First Legal Name", "Ada"),
            tally_field("question_WRQEVL", "Last Legal Name", "Lovelace"),
            tally_field("question_DpbkGX", "Date of Birth", "1990-12-10", "INPUT_DATE"),
            tally_field("question_QRjell", "Privacy Policy Acceptance", True, "CHECKBOX"),
            tally_field(
                "question_P941qP",
                "Internship Contract & Agreement Acceptance",
                [{"id": "s1", "name": "signature.png", "url": "https://storage.tally.so/sig.png", "mimeType": "image/png"}],
                "SIGNATURE",
            ),
        ]
        return tally_payload(fields, submission_id=submission_id, form_name="Agreement")
    return _build


@pytest.fixture
def post_webhook(client):
    """POST a signed webhook the way Tally sends it."""
    def _post(path, payload, signature=None, ip=WEBHOOK_IP, raw_body=None):
        body = raw_body if raw_body is not None else json.dumps(payload).encode("utf-8")
        headers = {"Content-Type": "application/json"}
        if ip:
            headers["X-Forwarded-For"] = ip
        if signature is not False:
            headers["tally-signature"] = signature or compute_signature(body, WEBHOOK_SECRET)
        return client.post(f"/api/webhooks/tally/{path}", content=body, headers=headers)
    return _post
