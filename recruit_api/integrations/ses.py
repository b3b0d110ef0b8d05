"""SES integration for sending emails."""

import html
from pathlib import Path
from typing import Iterable, Optional

import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from recruit_api.config.settings import settings

logger = structlog.get_logger()

# Template directory
TEMPLATE_DIR = Path(__file__).parent.parent / "config" / "templates"


class SESError(Exception):
    """Raised when SES operations fail."""
    pass


def load_template(name: str) -> str:
    """Load a template file by name, e.g. 'decision/offer-letter'."""
    template_path = TEMPLATE_DIR / f"{name}.html"
    if not template_path.exists():
        raise FileNotFoundError(f"Template not found: {name}")
    return template_path.read_text(encoding="utf-8")


def render_template(template: str, variables: dict, raw_keys: Iterable[str] = ()) -> str:
    """Render a template with {{VARIABLE}} syntax.

    Values are HTML-escaped except for keys in raw_keys, which carry markup
    built by the caller from already-escaped parts.
    """
    raw = set(raw_keys)
    result = template
    for key, value in variables.items():
        text = "" if value is None else str(value)
        if key not in raw:
            text = html.escape(text)
        result = result.replace(f"{{{{{key}}}}}", text)
    return result


class SESService:
    """Sends rendered candidate emails through AWS SES."""

    def __init__(self, from_email: Optional[str] = None, from_name: Optional[str] = None):
        credentials = {}
        if settings.SES_ACCESS_KEY_ID and settings.SES_SECRET_ACCESS_KEY:
            credentials = {
                "aws_access_key_id": settings.SES_ACCESS_KEY_ID,
                "aws_secret_access_key": settings.SES_SECRET_ACCESS_KEY,
            }

        # Without explicit keys boto3 falls back to the instance role
        self.client = boto3.client("ses", region_name=settings.SES_REGION, **credentials)
        self.from_email = from_email or settings.SES_FROM_EMAIL
        self.from_name = from_name or settings.SES_FROM_NAME
        self.reply_to = settings.SES_REPLY_TO

    @property
    def source(self) -> str:
        return f"{self.from_name} <{self.from_email}>"

    def send_email(self, to: str, subject: str, html_body: str) -> str:
        """Send one HTML email to a single candidate.

        Returns:
            SES message ID

        Raises:
            SESError: if SES rejects the message or cannot be reached
        """
        message = {
            "Subject": {"Data": subject, "Charset": "utf-8"},
            "Body": {"Html": {"Data": html_body, "Charset": "utf-8"}},
        }
        extra = {"ReplyToAddresses": [self.reply_to]} if self.reply_to else {}

        try:
            response = self.client.send_email(
                Source=self.source,
                Destination={"ToAddresses": [to]},
                Message=message,
                **extra,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("SES send failed", error_type=type(e).__name__)
            raise SESError(f"Email send failed: {type(e).__name__}") from e

        message_id = response["MessageId"]
        logger.info("Email handed to SES", message_id=message_id)
        return message_id
