"""Email delivery maintenance."""

import structlog
from fastapi import APIRouter, Depends

from recruit_api.services.email import EmailService, get_email_service
from recruit_api.services.rbac import ActorContext, require_admin

logger = structlog.get_logger()
router = APIRouter()


@router.post("/retry-failed")
async def retry_failed_emails(
    email: EmailService = Depends(get_email_service),
    actor: ActorContext = Depends(require_admin),
) -> dict:
    """Resend FAILED and QUEUED emails from the retry window.

    Meant to be called by a scheduler as well as by hand.
    """
    summary = email.retry_failed_emails()
    logger.info("Email retry triggered", triggered_by=actor.user_id, **summary)
    return summary
