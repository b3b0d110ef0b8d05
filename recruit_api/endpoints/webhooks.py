"""Tally form webhook endpoints.

Not behind session auth: each request is verified by IP allowlist and
HMAC signature instead. Errors use the flat {"error": message} shape.
"""

from typing import Callable

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from recruit_api.config.database import get_db
from recruit_api.middleware.error_handler import WebhookError
from recruit_api.services import webhooks
from recruit_api.services.email import EmailService, get_email_service
from recruit_api.services.webhook_security import verify_webhook_request, webhook_options_response

logger = structlog.get_logger()
router = APIRouter()


async def _process(request: Request, db: Session, handler: Callable, **kwargs) -> JSONResponse:
    verified = await verify_webhook_request(request)
    headers = verified.rate_limit_headers

    try:
        result = handler(db, verified.payload, ip=verified.ip, **kwargs)
    except WebhookError as e:
        e.headers = {**headers, **e.headers}
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(
            "Webhook processing failed",
            handler=handler.__name__,
            error_type=type(e).__name__,
        )
        raise WebhookError("Internal server error", 500, headers)

    return JSONResponse(content=result, headers=headers)


@router.post("/application")
async def application_webhook(
    request: Request,
    db: Session = Depends(get_db),
    email: EmailService = Depends(get_email_service),
):
    """New candidate application."""
    return await _process(request, db, webhooks.handle_application, email=email)


@router.post("/general-competencies")
async def general_competencies_webhook(
    request: Request,
    db: Session = Depends(get_db),
):
    """General competencies result; applies to every waiting application of the person."""
    return await _process(request, db, webhooks.handle_general_competencies)


@router.post("/specialized-competencies")
async def specialized_competencies_webhook(
    request: Request,
    db: Session = Depends(get_db),
):
    """Specialised competency submission, recorded for manual review."""
    return await _process(request, db, webhooks.handle_specialized_competencies)


@router.post("/agreement")
async def agreement_webhook(
    request: Request,
    db: Session = Depends(get_db),
):
    """Signed agreement."""
    return await _process(request, db, webhooks.handle_agreement)


@router.options("/application")
@router.options("/general-competencies")
@router.options("/specialized-competencies")
@router.options("/agreement")
async def webhook_preflight():
    return webhook_options_response()
