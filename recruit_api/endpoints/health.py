"""Health endpoints for monitoring and orchestration probes."""

from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from recruit_api.config.database import get_db
from recruit_api.config.settings import settings

logger = structlog.get_logger()
router = APIRouter()


class HealthResponse(BaseModel):
    status: str
    version: str
    timestamp: str
    database: str
    email: str
    webhooks: str


def database_status(db: Session) -> str:
    try:
        db.execute(text("SELECT 1")).scalar()
    except SQLAlchemyError as e:
        logger.error("Database health check failed", error_type=type(e).__name__)
        return "disconnected"
    return "connected"


def email_status() -> str:
    return "configured" if settings.SES_FROM_EMAIL else "not_configured"


def webhook_status() -> str:
    """Webhooks are only usable once a signing secret is set, except in development."""
    if settings.WEBHOOK_SECRET or settings.is_development:
        return "configured"
    return "not_configured"


@router.get("", response_model=HealthResponse)
@router.get("/", response_model=HealthResponse, include_in_schema=False)
async def health_check(db: Session = Depends(get_db)) -> HealthResponse:
    """Component health. The overall status follows the database."""
    db_state = database_status(db)

    return HealthResponse(
        status="healthy" if db_state == "connected" else "unhealthy",
        version=settings.APP_VERSION,
        timestamp=datetime.now(timezone.utc).isoformat(),
        database=db_state,
        email=email_status(),
        webhooks=webhook_status(),
    )


@router.get("/ready")
async def readiness_check(db: Session = Depends(get_db)) -> dict:
    if database_status(db) != "connected":
        return {"ready": False, "reason": "Database not connected"}
    return {"ready": True}


@router.get("/live")
async def liveness_check() -> dict:
    return {"alive": True}
