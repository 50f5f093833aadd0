"""
Application exceptions and the JSON error envelope for Standup Pulse.

Every error response has the same shape (ErrorResponse) and carries the
request id set by LoggingMiddleware. Analytics code raises these only where a
caller can act on them: the batch passes count per-person failures instead of
raising, and the sentiment client never lets its own errors escape.
"""
import logging
from typing import Optional, Dict, Any
from datetime import datetime
from enum import Enum
from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from starlette.exceptions import HTTPException as StarletteHTTPException

from pulse.core.logging import get_request_id

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    INTERNAL_ERROR = "INTERNAL_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    DATABASE_ERROR = "DATABASE_ERROR"
    SENTIMENT_SERVICE_ERROR = "SENTIMENT_SERVICE_ERROR"
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    CIRCUIT_BREAKER_OPEN = "CIRCUIT_BREAKER_OPEN"
    BATCH_ERROR = "BATCH_ERROR"


class ErrorResponse(BaseModel):
    """Body of every non-2xx response produced by the handlers below."""
    error: str
    code: str
    detail: Optional[str] = None
    request_id: Optional[str] = None
    timestamp: str
    path: Optional[str] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error": "Alert not found: 42",
                "code": "NOT_FOUND",
                "detail": None,
                "request_id": "abc123",
                "timestamp": "2026-01-22T12:00:00Z",
                "path": "/api/alerts/42/dismiss"
            }
        }
    )


# =============================================================================
# Exceptions
# =============================================================================

class AppException(Exception):
    """
    Base for errors that map to an HTTP response.

    Subclasses set `code`, `status_code` and `default_message`. Server-side
    errors are logged with a traceback when raised; client errors are not
    logged unless `log_client_errors` is set on the subclass.
    """
    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    status_code: int = 500
    default_message: str = "Internal error"
    log_client_errors: bool = False

    def __init__(
        self,
        message: Optional[str] = None,
        detail: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message or self.default_message
        self.detail = detail
        self.context = context or {}
        super().__init__(self.message)

        extra = {"error_code": self.code.value, "status_code": self.status_code, **self.context}
        if self.status_code >= 500:
            logger.error(self.message, extra=extra, exc_info=True)
        elif self.log_client_errors:
            logger.warning(self.message, extra=extra)


class DatabaseException(AppException):
    code = ErrorCode.DATABASE_ERROR
    default_message = "Database error occurred"


class ExternalServiceException(AppException):
    code = ErrorCode.EXTERNAL_SERVICE_ERROR
    status_code = 502
    default_message = "External service error"


class SentimentServiceException(ExternalServiceException):
    """Bad reply from the sentiment service. Raised inside the client, never past it."""
    code = ErrorCode.SENTIMENT_SERVICE_ERROR
    status_code = 422
    default_message = "Sentiment service error"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail=detail, context={"service": "sentiment"})


class BatchException(AppException):
    """A manually triggered batch pass failed as a whole."""
    code = ErrorCode.BATCH_ERROR
    default_message = "Batch pass failed"

    def __init__(self, message: Optional[str] = None, detail: Optional[str] = None, job: Optional[str] = None):
        super().__init__(message, detail=detail, context={"job": job} if job else None)


class NotFoundException(AppException):
    code = ErrorCode.NOT_FOUND
    status_code = 404

    def __init__(self, resource: str, identifier: Optional[str] = None):
        message = f"{resource} not found" + (f": {identifier}" if identifier else "")
        super().__init__(message)


# =============================================================================
# Exception Handlers
# =============================================================================

HTTP_STATUS_CODES = {
    400: ErrorCode.VALIDATION_ERROR,
    404: ErrorCode.NOT_FOUND,
    429: ErrorCode.RATE_LIMIT_EXCEEDED,
    503: ErrorCode.SERVICE_UNAVAILABLE,
}


def create_error_response(
    request: Request,
    status_code: int,
    error: str,
    code: ErrorCode,
    detail: Optional[str] = None,
) -> JSONResponse:
    request_id = get_request_id()
    body = ErrorResponse(
        error=error,
        code=code.value,
        detail=detail,
        request_id=request_id,
        timestamp=datetime.utcnow().isoformat() + "Z",
        path=str(request.url.path),
    )
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(),
        headers={"X-Request-ID": request_id} if request_id else {},
    )


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    return create_error_response(request, exc.status_code, exc.message, exc.code, exc.detail)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return create_error_response(
        request,
        exc.status_code,
        str(exc.detail) if exc.detail else "An error occurred",
        HTTP_STATUS_CODES.get(exc.status_code, ErrorCode.INTERNAL_ERROR),
    )


async def circuit_breaker_handler(request: Request, exc) -> JSONResponse:
    return create_error_response(
        request,
        503,
        "Service temporarily unavailable",
        ErrorCode.CIRCUIT_BREAKER_OPEN,
        detail=str(exc),
    )


async def rate_limit_handler(request: Request, exc) -> JSONResponse:
    return create_error_response(
        request,
        429,
        "Rate limit exceeded",
        ErrorCode.RATE_LIMIT_EXCEEDED,
        detail="Too many requests. Please try again later.",
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Anything unhandled: logged with traceback, details only shown in debug mode."""
    from pulse.core.config import get_settings

    logger.error(
        f"Unhandled exception: {exc}",
        extra={"request_id": get_request_id(), "path": str(request.url.path), "method": request.method},
        exc_info=True,
    )
    return create_error_response(
        request,
        500,
        "An unexpected error occurred",
        ErrorCode.INTERNAL_ERROR,
        detail=str(exc) if get_settings().debug else None,
    )


def register_exception_handlers(app):
    from pulse.core.resilience import CircuitBreakerError
    from slowapi.errors import RateLimitExceeded

    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(CircuitBreakerError, circuit_breaker_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
