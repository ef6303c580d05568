from typing import Any

from fastapi import Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse


class AppError(Exception):
    """Base application error with consistent schema."""

    def __init__(
        self,
        message: str,
        code: str = "ERROR",
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
        error: str | None = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        self.error = error
        super().__init__(message)


class BadRequestError(AppError):
    """Caller-supplied data is malformed or missing."""

    def __init__(self, message: str = "Bad request", details: dict[str, Any] | None = None):
        super().__init__(message, code="INVALID_REQUEST", status_code=status.HTTP_400_BAD_REQUEST, details=details)


class MissingFieldsError(AppError):
    def __init__(self, message: str = "Missing required fields", details: dict[str, Any] | None = None):
        super().__init__(message, code="MISSING_FIELDS", status_code=status.HTTP_400_BAD_REQUEST, details=details)


class UnauthorizedError(AppError):
    def __init__(self, message: str = "Unauthorized", error: str | None = None):
        super().__init__(message, code="UNAUTHORIZED", status_code=status.HTTP_401_UNAUTHORIZED, error=error)


class UpstreamError(AppError):
    """Gateway or persistence dependency failed. `error` carries the upstream message."""

    def __init__(self, message: str = "Upstream service failed", error: str | None = None):
        super().__init__(message, code="UPSTREAM_ERROR", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, error=error)


class ConfigurationError(AppError):
    """A required secret or collaborator is not configured. Operator-facing."""

    def __init__(self, message: str = "Not configured", status_code: int = status.HTTP_503_SERVICE_UNAVAILABLE):
        super().__init__(message, code="NOT_CONFIGURED", status_code=status_code)


def _with_request_id(request: Request, body: dict[str, Any]) -> dict[str, Any]:
    if hasattr(request.state, "request_id"):
        body["request_id"] = request.state.request_id
    return body


def error_response(request: Request, exc: AppError) -> ORJSONResponse:
    body: dict[str, Any] = {
        "success": False,
        "message": exc.message,
        "code": exc.code,
    }
    if exc.details:
        body["details"] = exc.details
    if exc.error:
        body["error"] = exc.error
    return ORJSONResponse(status_code=exc.status_code, content=_with_request_id(request, body))


async def app_exception_handler(request: Request, exc: AppError) -> ORJSONResponse:
    return error_response(request, exc)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> ORJSONResponse:
    body = {
        "success": False,
        "message": "Invalid request body.",
        "code": "INVALID_REQUEST",
        "details": {"errors": jsonable_encoder(exc.errors())},
    }
    return ORJSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_with_request_id(request, body),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> ORJSONResponse:
    from cookie_gallery.core.logging import get_logger
    get_logger(__name__).exception("unhandled_exception", exc_info=exc)
    body = {
        "success": False,
        "message": "Internal server error",
        "code": "INTERNAL_ERROR",
    }
    return ORJSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_with_request_id(request, body),
    )
