"""API endpoints for the recruitment pipeline."""

from fastapi import APIRouter

from .health import router as health_router
from .applications import router as applications_router
from .competencies import router as competencies_router
from .users import router as users_router
from .dashboard import router as dashboard_router
from .emails import router as emails_router
from .webhooks import router as webhooks_router

# Admin API, mounted under /api/v1
api_router = APIRouter()

api_router.include_router(health_router, prefix="/health", tags=["Health"])
api_router.include_router(applications_router, prefix="/applications", tags=["Applications"])
api_router.include_router(competencies_router, prefix="/competencies", tags=["Competencies"])
api_router.include_router(users_router, prefix="/users", tags=["Users"])
api_router.include_router(dashboard_router, prefix="/dashboard", tags=["Dashboard"])
api_router.include_router(emails_router, prefix="/emails", tags=["Email"])

__all__ = ["api_router", "health_router", "webhooks_router"]
