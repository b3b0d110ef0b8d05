"""Global exception handlers for the API."""

from typing import Any, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = structlog.get_logger()


class APIError(Exception):
    """Base exception for API errors."""

    def __init__(
        self,
        message: str,
        code: str = "API_ERROR",
        status_code: int = 400,
        details: dict = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class NotFoundError(APIError):
    """Resource not found."""

    def __init__(self, resource: str, identifier: Optional[str] = None):
        super().__init__(
            message=f"{resource} not found",
            code="NOT_FOUND",
            status_code=404,
            details={"resource": resource, "id": identifier},
        )


class ValidationAPIError(APIError):
    """Validation error."""

    def __init__(self, message: str, field: str = None):
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            status_code=422,
            details={"field": field} if field else {},
        )


class BadRequestError(APIError):
    """Request is well-formed but cannot be honoured as sent."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(
            message=message,
            code="BAD_REQUEST",
            status_code=400,
            details=details,
        )


class UnauthorizedError(APIError):
    """No valid session."""

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(
            message=message,
            code="UNAUTHORIZED",
            status_code=401,
        )


class ForbiddenError(APIError):
    """Access forbidden."""

    def __init__(self, message: str = "You don't have permission to access this resource"):
        super().__init__(
            message=message,
            code="FORBIDDEN",
            status_code=403,
        )


class TransitionError(APIError):
    """Entity exists but is not in the stage/status the transition requires."""

    def __init__(self, condition: str, expected: Any, actual: Any, message: str = None):
        self.condition = condition
        self.expected = expected
        self.actual = actual
        super().__init__(
            message=message or f"Invalid {condition}: expected {_describe(expected)}, got {actual}",
            code="INVALID_TRANSITION",
            status_code=400,
            details={"condition": condition, "expected": expected, "actual": actual},
        )


class WebhookError(Exception):
    """Webhook failure rendered in the vendor-facing {"error": message} shape."""

    def __init__(self, message: str, status_code: int = 400, headers: Optional[dict] = None):
        self.message = message
        self.status_code = status_code
        self.headers = headers or {}
        super().__init__(message)


def _describe(expected: Any) -> str:
    if isinstance(expected, (list, tuple, set, frozenset)):
        return " or ".join(str(item) for item in expected)
    return str(expected)


def _error_body(code: str, message: str, details: dict = None) -> dict:
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details or {},
        }
    }


def _field_from_errors(errors: list) -> tuple[str, str]:
    first_error = errors[0] if errors else {}
    loc = [str(part) for part in first_error.get("loc", []) if part not in ("body", "query", "path")]
    return ".".join(loc), first_error.get("msg", "Validation error")


def setup_exception_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(APIError)
    async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
        """Handle custom API errors."""
        logger.warning(
            "API error",
            code=exc.code,
            message=exc.message,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.code, exc.message, exc.details),
        )

    @app.exception_handler(WebhookError)
    async def webhook_error_handler(request: Request, exc: WebhookError) -> JSONResponse:
        """Webhook errors use the flat shape the form vendor logs."""
        logger.warning(
            "Webhook rejected",
            status_code=exc.status_code,
            message=exc.message,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.message},
            headers=exc.headers,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Render framework HTTP errors (404 routes, 405 methods) in the API shape."""
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body("HTTP_ERROR", str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Handle malformed path, query and body input."""
        errors = exc.errors()
        field, message = _field_from_errors(errors)

        logger.warning(
            "Request validation error",
            field=field,
            message=message,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=422,
            content=_error_body("VALIDATION_ERROR", message, {"field": field}),
        )

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        """Handle Pydantic validation errors."""
        field, message = _field_from_errors(exc.errors())

        logger.warning(
            "Validation error",
            field=field,
            message=message,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=422,
            content=_error_body("VALIDATION_ERROR", message, {"field": field}),
        )

    @app.exception_handler(SQLAlchemyError)
    async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        """Handle database errors."""
        logger.error(
            "Database error",
            error_type=type(exc).__name__,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=500,
            content=_error_body("DATABASE_ERROR", "A database error occurred"),
        )

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected errors."""
        logger.exception(
            "Unexpected error",
            error_type=type(exc).__name__,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=500,
            content=_error_body("INTERNAL_ERROR", "An unexpected error occurred"),
        )
