"""Authentication middleware for session token validation."""

import re
from typing import Optional

import structlog
from fastapi import Request
from jose import JWTError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response

from recruit_api.config.settings import settings
from recruit_api.services.token import decode_token

logger = structlog.get_logger()


# Paths that don't require authentication
SKIP_AUTH_PATHS = [
    r"^/api/webhooks/",
    r"^/health",
    r"^/api/v1/health",
    r"^/api/docs",
    r"^/api/openapi\.json",
    r"^/api/redoc",
    r"^/$",
]

SKIP_AUTH_PATTERNS = [re.compile(p) for p in SKIP_AUTH_PATHS]


def should_skip_auth(path: str) -> bool:
    """Check if path should skip authentication."""
    return any(pattern.match(path) for pattern in SKIP_AUTH_PATTERNS)


def get_token_from_request(request: Request) -> Optional[str]:
    """Extract session token from request (cookie or Authorization header)."""
    token = request.cookies.get(settings.COOKIE_NAME)
    if token:
        return token

    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[7:]

    return None


def _unauthorized(message: str) -> JSONResponse:
    return JSONResponse(
        status_code=401,
        content={"error": {"code": "UNAUTHORIZED", "message": message, "details": {}}},
    )


class AuthMiddleware(BaseHTTPMiddleware):
    """Middleware that validates session tokens on protected routes."""

    async def dispatch(self, request: Request, call_next) -> Response:
        """Reject unauthenticated requests before any handler runs."""
        if request.method == "OPTIONS" or should_skip_auth(request.url.path):
            return await call_next(request)

        token = get_token_from_request(request)
        if not token:
            return _unauthorized("Not authenticated")

        try:
            payload = decode_token(token)
        except JWTError as e:
            logger.info("Rejected session token", reason=str(e), path=request.url.path)
            return _unauthorized("Invalid or expired session")

        request.state.user = payload
        return await call_next(request)
