import logging
from datetime import datetime
from typing import List, Optional

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.platform.response import api_response


class WaitlistError(Exception):
    """Base for errors that are safe to show to the caller."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    error: str = "Bad request"

    def __init__(self, message: Optional[str] = None, *, error: Optional[str] = None):
        self.message = message or self.error
        if error is not None:
            self.error = error
        super().__init__(self.message)


class InvalidPayload(WaitlistError):
    error = "Invalid submission data"


class InvalidEmail(WaitlistError):
    error = "Invalid email address"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        error: Optional[str] = None,
        suggestions: Optional[List[str]] = None,
    ):
        super().__init__(message, error=error or message)
        self.suggestions = suggestions or None


class InvalidDomain(InvalidEmail):
    error = "Disposable email addresses are not allowed"


class RateLimited(WaitlistError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    error = "Too many requests. Please try again later."

    def __init__(self, reset_at: datetime, message: str = "Rate limit exceeded"):
        super().__init__(message)
        self.reset_at = reset_at


class DuplicateActive(WaitlistError):
    status_code = status.HTTP_409_CONFLICT
    error = "Email already on waitlist"


class PreviouslyUnsubscribed(WaitlistError):
    error = "Email previously unsubscribed"


class TokenInvalid(WaitlistError):
    error = "Invalid token"


class TokenNotFound(WaitlistError):
    status_code = status.HTTP_404_NOT_FOUND
    error = "Token not found"


class EmailNotFound(WaitlistError):
    status_code = status.HTTP_404_NOT_FOUND
    error = "Email not found"


class Unauthorized(WaitlistError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error = "Unauthorized"


class StorageUnavailable(WaitlistError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error = "Internal server error"


class ConstraintViolation(Exception):
    """A unique constraint rejected an insert (usually a concurrent signup)."""


def add_exception_handlers(app):
    @app.exception_handler(WaitlistError)
    async def waitlist_exception_handler(request: Request, exc: WaitlistError):
        return api_response(
            message=exc.message,
            error=exc.error,
            status_code=exc.status_code,
            suggestions=getattr(exc, "suggestions", None),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return api_response(
            message=str(exc.detail) or "Error",
            error=str(exc.detail) or "Error",
            status_code=exc.status_code,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0]["msg"] if errors else "Validation failed"
        return api_response(
            message=first,
            error="Invalid request data",
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logging.exception(f"Unhandled exception on {request.method} {request.url.path}")
        return api_response(
            message="Something went wrong. Please try again later.",
            error="Internal server error",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
