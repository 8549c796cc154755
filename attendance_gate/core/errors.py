"""
Central error handling for the attendance gate backend

Domain failures are raised as AttendanceError subclasses by the services and
rendered by attendance_error_handler with the same JSON envelope as
HTTPException, plus any extra fields the client needs to pick its next action
(request_id for a pending review, ip for a network denial).
"""
import logging
import traceback
from typing import Any, Dict, Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "*",
    "Access-Control-Allow-Headers": "*",
}


class AttendanceError(Exception):
    """Base class for typed domain outcomes that end a request."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    default_detail: str = "Request could not be processed"

    def __init__(self, detail: Optional[str] = None, **extra: Any):
        self.detail = detail or self.default_detail
        self.extra: Dict[str, Any] = extra
        super().__init__(self.detail)


class DenyNetwork(AttendanceError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Your IP is not within the allowed company network"


class DenyMissingDevice(AttendanceError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Missing device identifier (x-device-id)"


class ReviewRequired(AttendanceError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Device is not registered. Device change request pending admin approval."


class SequenceViolation(AttendanceError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_detail = "Attendance marks must alternate between IN and OUT"


class NotCheckedIn(AttendanceError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_detail = "You must be checked in to start a break."


class AlreadyOnBreak(AttendanceError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_detail = "You are already on a break."


class NotOnBreak(AttendanceError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_detail = "You are not currently on a break."


class AlreadyReviewed(AttendanceError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_detail = "Request already reviewed"


class Forbidden(AttendanceError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Forbidden"


class InvalidState(AttendanceError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_detail = "Invalid state for this operation"


class NotFound(AttendanceError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"


class Conflict(AttendanceError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "You already have a pending device-change request. Please wait for admin review."


class StorageError(AttendanceError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Storage temporarily unavailable, please retry"


def _envelope(request: Request, status_code: int, detail: Any, **extra: Any) -> Dict[str, Any]:
    content = {
        "error": True,
        "status_code": status_code,
        "detail": detail,
        "path": str(request.url.path),
    }
    content.update(extra)
    return content


async def attendance_error_handler(request: Request, exc: AttendanceError) -> JSONResponse:
    """
    Render a domain error with the shared envelope.

    Args:
        request: FastAPI request object
        exc: AttendanceError instance

    Returns:
        JSONResponse with error details and any extra fields
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=_envelope(request, exc.status_code, exc.detail, **exc.extra),
        headers=_CORS_HEADERS,
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """
    Handle HTTPException with consistent JSON response format

    Args:
        request: FastAPI request object
        exc: HTTPException instance

    Returns:
        JSONResponse with error details
    """
    headers = dict(_CORS_HEADERS)
    if exc.headers:
        headers.update(exc.headers)
    return JSONResponse(
        status_code=exc.status_code,
        content=_envelope(request, exc.status_code, exc.detail),
        headers=headers,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Handle RequestValidationError with consistent JSON response format

    Does not leak internal validation details in production.
    """
    from attendance_gate.core.config import settings

    if settings.APP_ENV == "prod":
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=_envelope(request, 422, "Validation error: Invalid request data"),
        )

    # Sanitize for JSON: e.g. ctx.error ValueError -> str
    errors = []
    for e in exc.errors():
        err = dict(e)
        if "ctx" in err and isinstance(err["ctx"], dict):
            err["ctx"] = {
                k: (str(v) if not isinstance(v, (str, int, float, bool, type(None))) else v)
                for k, v in err["ctx"].items()
            }
        errors.append(err)
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=_envelope(request, 422, "Validation error", errors=errors),
    )


async def storage_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """
    Handle storage failures as a retryable 503 without leaking driver detail.
    """
    logger.error("Storage failure on %s: %s", request.url.path, exc, exc_info=True)
    return JSONResponse(
        status_code=StorageError.status_code,
        content=_envelope(request, StorageError.status_code, StorageError.default_detail),
        headers=_CORS_HEADERS,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle unexpected exceptions with consistent JSON response format

    Does not leak internal error details in production.
    """
    from attendance_gate.core.config import settings

    logger.error("Unhandled exception: %s", exc, exc_info=True)

    if settings.APP_ENV == "prod":
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_envelope(request, 500, "Internal server error"),
            headers=_CORS_HEADERS,
        )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_envelope(
            request,
            500,
            str(exc),
            traceback=traceback.format_exc() if settings.APP_ENV == "local" else None,
        ),
        headers=_CORS_HEADERS,
    )
