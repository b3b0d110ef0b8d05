"""Structured request logging.

Every request gets a short id bound into the structlog context so that
webhook handlers, services and audit writes log under the same id. A caller
supplied ``X-Request-ID`` is reused when it looks sane, which lets a form
provider's delivery id follow the request through our logs.
"""

import logging
import re
import time
import uuid
from typing import Any

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from recruit_api.config.settings import settings

logger = structlog.get_logger()

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_REQUEST_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")

# Longest free-text fragment allowed into a log line
MAX_LOG_VALUE_LENGTH = 200

# Probes hit these constantly; only log them at debug
QUIET_PATHS = ("/health", "/api/v1/health")


def configure_logging() -> None:
    """Set up structlog to emit one JSON object per line."""
    level = logging.getLevelName(settings.LOG_LEVEL.upper())
    if not isinstance(level, int):
        level = logging.INFO

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def sanitize_for_log(value: Any, max_length: int = MAX_LOG_VALUE_LENGTH) -> str:
    """Make request-supplied text safe to embed in a log line."""
    text = _CONTROL_CHARS.sub(" ", str(value))
    if len(text) > max_length:
        return text[:max_length] + "..."
    return text


def resolve_request_id(request: Request) -> str:
    incoming = request.headers.get("X-Request-ID", "")
    if _REQUEST_ID.match(incoming):
        return incoming
    return uuid.uuid4().hex[:8]


class LoggingMiddleware(BaseHTTPMiddleware):
    """Binds a request id and logs each request with its outcome and timing."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = resolve_request_id(request)
        request.state.request_id = request_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        quiet = request.url.path in QUIET_PATHS
        started = time.perf_counter()
        if not quiet:
            logger.info(
                "Request received",
                client=request.client.host if request.client else None,
            )

        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "Request failed",
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            raise

        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
        if quiet:
            logger.debug("Probe served", status_code=response.status_code)
        elif response.status_code >= 500:
            logger.error("Request completed", status_code=response.status_code, duration_ms=elapsed_ms)
        elif response.status_code >= 400:
            logger.warning("Request completed", status_code=response.status_code, duration_ms=elapsed_ms)
        else:
            logger.info("Request completed", status_code=response.status_code, duration_ms=elapsed_ms)

        response.headers["X-Request-ID"] = request_id
        return response
