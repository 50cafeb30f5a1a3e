"""
Error types and the request-level error boundary.

Every AppError renders as {"error": {"code", "message", "details"}} with the
request's X-Correlation-ID echoed back. Unhandled exceptions become a generic
500; stack traces and exception text are NEVER returned to clients.

Contract bodies (entitlement results, webhook acknowledgements) are built by
their routes and do not go through this module.
"""

import logging
import uuid
from typing import Any, Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"


class AppError(Exception):
    """Base application error. Subclasses fix the code and HTTP status."""

    code = "INTERNAL_ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        self.message = message or self.default_message
        super().__init__(self.message)
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict:
        return _error_body(self.code, self.message, self.details)


class ValidationError(AppError):
    """Bad input (400). Raised before any side effect."""

    code = "VALIDATION_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class AuthenticationError(AppError):
    """Missing or invalid bearer token (401)."""

    code = "AUTHENTICATION_ERROR"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Authentication required"


class ServiceUnavailableError(AppError):
    """A backing service is not wired up (503)."""

    code = "SERVICE_UNAVAILABLE"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Service temporarily unavailable"


def _error_body(code: str, message: str, details: dict[str, Any]) -> dict:
    return {"error": {"code": code, "message": message, "details": details}}


def get_correlation_id(request: Request) -> str:
    """Correlation ID from the request header, request state, or a fresh UUID."""
    header_value = request.headers.get(CORRELATION_HEADER)
    if header_value:
        return header_value
    return getattr(request.state, "correlation_id", None) or str(uuid.uuid4())


def _render(error: AppError, request: Request, correlation_id: str) -> JSONResponse:
    logger.warning("Application error", extra={
        "correlation_id": correlation_id,
        "error_code": error.code,
        "status_code": error.status_code,
        "path": request.url.path,
        "method": request.method,
    })
    return JSONResponse(
        status_code=error.status_code,
        content=error.to_dict(),
        headers={CORRELATION_HEADER: correlation_id},
    )


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Assigns a correlation ID to each request and converts escaped exceptions."""

    async def dispatch(self, request: Request, call_next):
        correlation_id = get_correlation_id(request)
        request.state.correlation_id = correlation_id

        try:
            response = await call_next(request)
        except AppError as e:
            return _render(e, request, correlation_id)
        except Exception as e:
            logger.exception("Unhandled exception", extra={
                "correlation_id": correlation_id,
                "error_type": type(e).__name__,
                "path": request.url.path,
                "method": request.method,
            })
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content=_error_body(
                    AppError.code, AppError.default_message, {"correlation_id": correlation_id}
                ),
                headers={CORRELATION_HEADER: correlation_id},
            )

        response.headers[CORRELATION_HEADER] = correlation_id
        return response


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Exception handler for AppError raised inside dependencies and routes."""
    return _render(exc, request, get_correlation_id(request))
