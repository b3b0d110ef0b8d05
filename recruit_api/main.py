"""
Recruitment Pipeline API.

Form webhooks drive candidates through the pipeline; staff and admins work
the same records through /api/v1.

Run with: uvicorn recruit_api.main:app --reload
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from recruit_api.config.settings import settings
from recruit_api.config.database import init_db
from recruit_api.endpoints import api_router, webhooks_router
from recruit_api.middleware.auth import AuthMiddleware
from recruit_api.middleware.error_handler import setup_exception_handlers
from recruit_api.middleware.logging import LoggingMiddleware, configure_logging
from recruit_api.middleware.security import SecurityMiddleware

configure_logging()
logger = structlog.get_logger()


def _warn_on_weak_config() -> None:
    if settings.is_development:
        return
    if not settings.WEBHOOK_SECRET:
        logger.warning("WEBHOOK_SECRET is not set; all webhook requests will be rejected")
    if "0.0.0.0/0" in settings.TALLY_WEBHOOK_IP_WHITELIST:
        logger.warning("Webhook IP allowlist accepts every address")
    if not settings.SES_FROM_EMAIL:
        logger.warning("SES_FROM_EMAIL is not set; candidate emails will fail")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "Starting recruitment API",
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        debug=settings.DEBUG,
    )
    _warn_on_weak_config()

    # Schema is managed by migrations outside DEBUG
    if settings.DEBUG:
        logger.info("Creating tables for local development")
        try:
            init_db()
        except Exception as e:
            logger.error("Table creation failed", error_type=type(e).__name__)

    yield

    logger.info("Recruitment API stopped")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Candidate pipeline driven by form webhooks, with an admin API",
    docs_url="/api/docs" if settings.DEBUG else None,
    redoc_url="/api/redoc" if settings.DEBUG else None,
    openapi_url="/api/openapi.json" if settings.DEBUG else None,
    lifespan=lifespan,
)

setup_exception_handlers(app)

# Starlette wraps in reverse order of registration: the last one added
# (logging) sees every request first, CORS sits closest to the routes.
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(SecurityMiddleware)
app.add_middleware(AuthMiddleware)
app.add_middleware(LoggingMiddleware)

app.include_router(api_router, prefix="/api/v1")

# Webhooks authenticate by signature, not session
app.include_router(webhooks_router, prefix="/api/webhooks/tally", tags=["Webhooks"])


@app.get("/health")
async def root_health():
    """Load balancer probe. Does not touch the database."""
    return {"status": "ok", "version": settings.APP_VERSION}


@app.get("/")
async def root():
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/api/docs" if settings.DEBUG else None,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "recruit_api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
