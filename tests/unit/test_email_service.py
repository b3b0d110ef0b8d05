"""Tests for templated email delivery, logging and retries."""

import json
from datetime import date

from recruit_api.config.settings import settings
from recruit_api.integrations.ses import render_template
from recruit_api.models import AuditLog, EmailLog
from recruit_api.services.email import EmailService, email_rate_limiter, send_best_effort, with_query


class TestRenderTemplate:
    def test_escapes_values(self):
        rendered = render_template("<p>{{NAME}}</p>", {"NAME": "<b>Ada</b>"})
        assert rendered == "<p>&lt;b&gt;Ada&lt;/b&gt;</p>"

    def test_raw_keys_are_not_escaped(self):
        rendered = render_template("{{LIST}}", {"LIST": "<ul></ul>"}, raw_keys=["LIST"])
        assert rendered == "<ul></ul>"

    def test_with_query_appends(self):
        assert with_query("https://tally.so/r/abc", who="p1") == "https://tally.so/r/abc?who=p1"
        assert with_query("https://tally.so/r/abc?x=1", who="p1") == "https://tally.so/r/abc?x=1&who=p1"


class TestEmailService:
    """Delivery outcomes are written to email_log."""

    def test_sent(self, db_session, email_service, ses_sender, make_application):
        application = make_application()
        person = application.person

        result = email_service.send_application_received(person, application)

        assert result.success is True
        assert result.message_id == "msg-1"
        log = db_session.query(EmailLog).filter(EmailLog.id == result.email_log_id).one()
        assert log.status == "SENT"
        assert log.sent_at is not None
        assert ses_sender.sent[0]["to"] == person.email
        assert "Software Engineer" in ses_sender.sent[0]["subject"]

        audit_entry = db_session.query(AuditLog).filter(AuditLog.action_type == "EMAIL_SENT").one()
        assert audit_entry.application_id == application.id

    def test_offer_letter_links_agreement_form(self, email_service, ses_sender, make_application):
        application = make_application(stage="AGREEMENT", status="ACCEPTED")

        email_service.send_offer_letter(application.person, application, date(2026, 11, 2))

        html_body = ses_sender.sent[0]["html"]
        assert f"applicationId={application.id}" in html_body
        assert "November 02, 2026" in html_body

    def test_failure_is_recorded_not_raised(self, db_session, email_service, ses_sender, make_application):
        ses_sender.fail = True
        application = make_application()

        result = email_service.send_rejection(application.person, application, "Not a fit")

        assert result.success is False
        assert result.queued is False
        log = db_session.query(EmailLog).filter(EmailLog.id == result.email_log_id).one()
        assert log.status == "FAILED"
        assert "ClientError" in log.error

    def test_queued_over_hourly_budget(self, monkeypatch, db_session, email_service, ses_sender, make_application):
        monkeypatch.setattr(settings, "EMAIL_RECIPIENTS_PER_HOUR", 0)
        application = make_application()

        result = email_service.send_gc_invitation(application.person, application)

        assert result.queued is True
        assert ses_sender.sent == []
        log = db_session.query(EmailLog).filter(EmailLog.id == result.email_log_id).one()
        assert log.status == "QUEUED"

    def test_queued_mail_does_not_use_daily_budget(self, monkeypatch, email_service, ses_sender, make_application):
        monkeypatch.setattr(settings, "EMAIL_RECIPIENTS_PER_HOUR", 1)
        monkeypatch.setattr(settings, "EMAIL_RECIPIENTS_PER_DAY", 3)
        application = make_application()

        results = [email_service.send_gc_invitation(application.person, application) for _ in range(3)]

        assert [r.queued for r in results] == [False, True, True]
        daily = email_rate_limiter.peek("email:day", 3, 86400)
        assert daily.allowed is True
        assert daily.remaining == 2

    def test_failed_delivery_does_not_use_budget(self, monkeypatch, email_service, ses_sender, make_application):
        monkeypatch.setattr(settings, "EMAIL_RECIPIENTS_PER_HOUR", 2)
        application = make_application()

        ses_sender.fail = True
        email_service.send_rejection(application.person, application, "Closed")
        email_service.send_rejection(application.person, application, "Closed")
        ses_sender.fail = False
        result = email_service.send_rejection(application.person, application, "Closed")

        assert result.success is True
        assert result.queued is False

    def test_retry_resends_failed_and_queued(self, db_session, email_service, ses_sender, make_application):
        application = make_application()
        ses_sender.fail = True
        failed = email_service.send_rejection(application.person, application, "Position filled")
        ses_sender.fail = False

        summary = email_service.retry_failed_emails()

        assert summary == {"retried": 1, "sent": 1, "failed": 0, "queued": 0}
        log = db_session.query(EmailLog).filter(EmailLog.id == failed.email_log_id).one()
        assert log.status == "SENT"
        assert log.error is None
        assert "Position filled" in ses_sender.sent[0]["html"]

    def test_stored_variables_keep_raw_keys(self, db_session, email_service, make_application):
        application = make_application()
        result = email_service.send_sc_invitation(
            application.person, application, [("Python", "https://tally.so/r/py")],
        )
        stored = json.loads(db_session.query(EmailLog).filter(EmailLog.id == result.email_log_id).one().variables)
        assert stored["raw"] == ["COMPETENCY_LIST"]
        assert f"applicationId={application.id}" in stored["values"]["COMPETENCY_LIST"]


class TestSendBestEffort:
    def test_swallows_unexpected_errors(self, db_session, make_application):
        class BrokenSender:
            def send_email(self, **kwargs):
                raise RuntimeError("boom")

        application = make_application()
        service = EmailService(db_session, sender=BrokenSender())

        assert send_best_effort(service, "send_application_received", application.person, application) is None
