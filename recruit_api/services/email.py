"""Templated email sending with delivery logging and rate limiting.

Every send is recorded in email_log. Sends over the hourly or daily
recipient budget are stored as QUEUED and picked up by
retry_failed_emails(). Transport failures are recorded, never raised:
callers treat email as a side effect that may fail.
"""

import html
import json
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Optional, Sequence
from urllib.parse import urlencode

import structlog
from fastapi import Depends
from sqlalchemy.orm import Session

from recruit_api.config.database import get_db
from recruit_api.config.recruitment import EMAIL_SUBJECTS, EMAIL_TEMPLATES, INTERVIEW_DURATION
from recruit_api.config.settings import settings
from recruit_api.integrations.ses import SESError, SESService, load_template, render_template
from recruit_api.middleware.security import InMemoryRateLimiter
from recruit_api.models import EmailLog
from recruit_api.models.base import utcnow
from recruit_api.services import audit

logger = structlog.get_logger()

# Process-local recipient counters (lost on restart)
email_rate_limiter = InMemoryRateLimiter()

HOUR = 3600
DAY = 86400


@dataclass
class EmailResult:
    success: bool
    queued: bool = False
    message_id: Optional[str] = None
    error: Optional[str] = None
    email_log_id: Optional[str] = None


def get_common_variables() -> dict:
    """Variables available to every template."""
    return {
        "ORGANIZATION_NAME": settings.ORGANIZATION_NAME,
        "ORGANIZATION_SHORT_NAME": settings.ORGANIZATION_SHORT_NAME,
        "APP_URL": settings.APP_URL,
        "CURRENT_YEAR": str(datetime.now().year),
        "SUPPORT_EMAIL": settings.SES_FROM_EMAIL,
    }


def with_query(url: str, **params: str) -> str:
    """Append query parameters to a form URL that may already have some."""
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{urlencode(params)}"


class EmailService:
    """Render, log and deliver pipeline emails."""

    def __init__(self, db: Session, sender: Optional[SESService] = None):
        self.db = db
        self._sender = sender

    @property
    def sender(self) -> SESService:
        if self._sender is None:
            self._sender = SESService()
        return self._sender

    def _within_limits(self) -> bool:
        """Peek both recipient budgets. Only delivered mail is counted."""
        day = email_rate_limiter.peek("email:day", settings.EMAIL_RECIPIENTS_PER_DAY, DAY)
        hour = email_rate_limiter.peek("email:hour", settings.EMAIL_RECIPIENTS_PER_HOUR, HOUR)
        return day.allowed and hour.allowed

    def _count_delivery(self) -> None:
        email_rate_limiter.record("email:day")
        email_rate_limiter.record("email:hour")

    def send(
        self,
        template_name: str,
        variables: dict,
        recipient: str,
        *,
        person_id: Optional[str] = None,
        application_id: Optional[str] = None,
        sent_by: Optional[str] = None,
        raw_keys: Sequence[str] = (),
    ) -> EmailResult:
        """Render a template and deliver it, recording the attempt."""
        all_variables = {**get_common_variables(), **variables}

        email_log = EmailLog(
            person_id=person_id,
            application_id=application_id,
            recipient=recipient,
            template_name=template_name,
            subject=self._subject(template_name, all_variables),
            variables=json.dumps({"values": all_variables, "raw": list(raw_keys)}),
            status="PENDING",
            sent_by=sent_by,
        )
        self.db.add(email_log)
        self.db.commit()

        if not self._within_limits():
            email_log.status = "QUEUED"
            self.db.commit()
            logger.warning("Email rate limit reached, queued", template=template_name, email_log_id=email_log.id)
            return EmailResult(success=False, queued=True, email_log_id=email_log.id)

        return self._deliver(email_log, all_variables, raw_keys)

    def _subject(self, template_name: str, variables: dict) -> str:
        subject = EMAIL_SUBJECTS.get(template_name, settings.ORGANIZATION_NAME)
        return render_template(subject, variables, raw_keys=variables.keys())

    def _deliver(self, email_log: EmailLog, variables: dict, raw_keys: Iterable[str]) -> EmailResult:
        html_body = render_template(load_template(email_log.template_name), variables, raw_keys)

        try:
            message_id = self.sender.send_email(
                to=email_log.recipient,
                subject=email_log.subject,
                html_body=html_body,
            )
        except SESError as e:
            email_log.status = "FAILED"
            email_log.error = str(e)
            self.db.commit()
            logger.warning("Email delivery failed", template=email_log.template_name, email_log_id=email_log.id)
            return EmailResult(success=False, error=str(e), email_log_id=email_log.id)

        email_log.status = "SENT"
        email_log.message_id = message_id
        email_log.error = None
        email_log.sent_at = utcnow()
        self.db.commit()
        self._count_delivery()

        audit.log_email_sent(
            self.db,
            email_log.template_name,
            email_log.recipient,
            email_log.person_id,
            email_log.application_id,
            email_log.sent_by,
            email_log.id,
        )
        return EmailResult(success=True, message_id=message_id, email_log_id=email_log.id)

    def retry_failed_emails(self) -> dict:
        """Resend FAILED and QUEUED emails from the retry window."""
        cutoff = utcnow() - timedelta(hours=settings.EMAIL_RETRY_WINDOW_HOURS)
        pending = (
            self.db.query(EmailLog)
            .filter(EmailLog.status.in_(["FAILED", "QUEUED"]))
            .filter(EmailLog.created_at >= cutoff)
            .order_by(EmailLog.created_at)
            .all()
        )

        summary = {"retried": 0, "sent": 0, "failed": 0, "queued": 0}
        for email_log in pending:
            if not self._within_limits():
                summary["queued"] += 1
                continue

            stored = json.loads(email_log.variables or "{}")
            result = self._deliver(email_log, stored.get("values", {}), stored.get("raw", []))
            summary["retried"] += 1
            summary["sent" if result.success else "failed"] += 1

        logger.info("Email retry sweep finished", **summary)
        return summary

    # Convenience senders

    def send_application_received(self, person, application) -> EmailResult:
        return self.send(
            EMAIL_TEMPLATES["APPLICATION_RECEIVED"],
            {
                "FIRST_NAME": person.first_name,
                "POSITION": application.position,
                "APPLICATION_DATE": application.created_at.strftime("%B %d, %Y") if application.created_at else "",
            },
            person.email,
            person_id=person.id,
            application_id=application.id,
        )

    def send_gc_invitation(self, person, application, sent_by: Optional[str] = None) -> EmailResult:
        return self.send(
            EMAIL_TEMPLATES["GC_INVITATION"],
            {
                "FIRST_NAME": person.first_name,
                "POSITION": application.position,
                "ASSESSMENT_LINK": with_query(settings.TALLY_FORM_GC_URL, who=person.id),
            },
            person.email,
            person_id=person.id,
            application_id=application.id,
            sent_by=sent_by,
        )

    def send_sc_invitation(
        self,
        person,
        application,
        competencies: Sequence[tuple[str, str]],
        sent_by: Optional[str] = None,
    ) -> EmailResult:
        """Invite the candidate to one or more specialised assessments.

        competencies is a list of (name, form_url) pairs.
        """
        links = [
            (name, with_query(url, applicationId=application.id, who=person.id))
            for name, url in competencies
        ]
        items = "".join(
            f'<li><a href="{html.escape(url, quote=True)}">{html.escape(name)}</a></li>'
            for name, url in links
        )
        intro = "Please complete the following assessment:" if len(links) == 1 else "Please complete each of the following assessments:"

        return self.send(
            EMAIL_TEMPLATES["SC_INVITATION"],
            {
                "FIRST_NAME": person.first_name,
                "POSITION": application.position,
                "COMPETENCY_LIST": f"<p>{intro}</p><ul>{items}</ul>",
            },
            person.email,
            person_id=person.id,
            application_id=application.id,
            sent_by=sent_by,
            raw_keys=("COMPETENCY_LIST",),
        )

    def send_interview_invitation(
        self,
        person,
        application,
        interviewer_name: str,
        scheduling_link: str,
        sent_by: Optional[str] = None,
    ) -> EmailResult:
        return self.send(
            EMAIL_TEMPLATES["INTERVIEW_INVITATION"],
            {
                "FIRST_NAME": person.first_name,
                "POSITION": application.position,
                "INTERVIEWER_NAME": interviewer_name,
                "SCHEDULING_LINK": scheduling_link,
                "INTERVIEW_DURATION": INTERVIEW_DURATION,
            },
            person.email,
            person_id=person.id,
            application_id=application.id,
            sent_by=sent_by,
        )

    def send_offer_letter(self, person, application, start_date: date, sent_by: Optional[str] = None) -> EmailResult:
        return self.send(
            EMAIL_TEMPLATES["OFFER_LETTER"],
            {
                "FIRST_NAME": person.first_name,
                "POSITION": application.position,
                "START_DATE": start_date.strftime("%B %d, %Y"),
                "AGREEMENT_LINK": with_query(settings.TALLY_FORM_AGREEMENT_URL, applicationId=application.id),
            },
            person.email,
            person_id=person.id,
            application_id=application.id,
            sent_by=sent_by,
        )

    def send_rejection(self, person, application, reason: Optional[str] = None, sent_by: Optional[str] = None) -> EmailResult:
        reason_block = f"<p>{html.escape(reason)}</p>" if reason else ""
        return self.send(
            EMAIL_TEMPLATES["REJECTION"],
            {
                "FIRST_NAME": person.first_name,
                "POSITION": application.position,
                "REASON_BLOCK": reason_block,
            },
            person.email,
            person_id=person.id,
            application_id=application.id,
            sent_by=sent_by,
            raw_keys=("REASON_BLOCK",),
        )


def send_best_effort(email: EmailService, sender: str, *args, **kwargs) -> Optional[EmailResult]:
    """Run a convenience sender by name; any failure is logged and swallowed.

    Usage:
        send_best_effort(email, "send_rejection", person, application, reason)
    """
    try:
        return getattr(email, sender)(*args, **kwargs)
    except Exception as e:
        email.db.rollback()
        logger.error(
            "Email side effect failed",
            sender=sender,
            error_type=type(e).__name__,
        )
        return None


def get_email_service(db: Session = Depends(get_db)) -> EmailService:
    """
    Dependency that provides an EmailService bound to the request session.

    Usage:
        @router.post("/{id}/send-email")
        async def send(email: EmailService = Depends(get_email_service)):
            ...
    """
    return EmailService(db)
