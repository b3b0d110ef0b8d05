"""Dashboard counters."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from recruit_api.config.database import get_db
from recruit_api.services.applications import get_application_stats, get_attention_breakdown
from recruit_api.services.rbac import ActorContext, require_access

router = APIRouter()


@router.get("/stats")
async def dashboard_stats(
    position: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_access),
) -> dict:
    """Totals per stage and status, plus what needs attention."""
    return get_application_stats(db, position)


@router.get("/attention")
async def attention(
    position: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_access),
) -> dict:
    return get_attention_breakdown(db, position)
