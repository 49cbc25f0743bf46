"""Domain errors raised by the cancellation and report services.

Each error carries the HTTP status it is surfaced as; ``register_error_handlers``
maps them to ``{"error": message}`` bodies at the route boundary.
"""
import logging
from datetime import datetime
from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class BookshareError(Exception):
    """Base exception for trust & moderation operations."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_body(self) -> dict:
        body = {"error": self.message}
        for key, value in self.extra.items():
            if isinstance(value, datetime):
                value = value.isoformat()
            body[key] = value
        return body


class NotFoundError(BookshareError):
    """Referenced transaction, cancellation, report or chat does not exist."""
    status_code = status.HTTP_404_NOT_FOUND


class ForbiddenError(BookshareError):
    """Caller is not allowed to act on this entity."""
    status_code = status.HTTP_403_FORBIDDEN


class ConflictError(BookshareError):
    """Duplicate or already-in-progress state."""
    status_code = status.HTTP_409_CONFLICT


class DuplicateError(ConflictError):
    """Same report already filed inside the duplicate window."""

    def __init__(self, message: str, duplicate_report_id: int):
        super().__init__(message, duplicate_report_id=duplicate_report_id)
        self.duplicate_report_id = duplicate_report_id


class InvalidStateError(BookshareError):
    """Entity is not in a state that permits the transition."""
    status_code = status.HTTP_400_BAD_REQUEST


class GoneError(BookshareError):
    """Deadline passed before the action could apply."""
    status_code = status.HTTP_410_GONE


class RateLimitError(BookshareError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS


class CooldownError(BookshareError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS

    def __init__(self, message: str, cooldown_until: Optional[datetime]):
        super().__init__(message, cooldown_until=cooldown_until)
        self.cooldown_until = cooldown_until


class SelfReportError(BookshareError):
    status_code = status.HTTP_400_BAD_REQUEST


class ValidationError(BookshareError):
    """Malformed input; ``details`` lists the offending fields."""
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, details: Optional[list[dict]] = None):
        super().__init__(message, details=details or [])
        self.details = details or []


def register_error_handlers(app: FastAPI) -> None:

    @app.exception_handler(BookshareError)
    async def bookshare_error_handler(request: Request, exc: BookshareError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_body())

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        # auth dependencies and unknown routes
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        details = [
            {
                "field": ".".join(str(part) for part in err["loc"] if part != "body"),
                "message": err["msg"],
            }
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Validation failed", "details": details},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Internal server error"},
        )
