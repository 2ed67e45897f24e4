"""Global exception handlers for consistent error responses.

Design:
- AppError subclasses → their own HTTP status (400, 403, 404, 429, 507)
- Unexpected Exception → generic 500 (safety net)
- All responses include request_id for log correlation
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from bootkv.core.errors import (
    AppError,
    CapacityExceededAppError,
    NotFoundAppError,
    RateLimitedAppError,
    SecretMismatchAppError,
    ValidationAppError,
)
from bootkv.core.logging import get_request_id

logger = logging.getLogger(__name__)

STATUS_BY_ERROR: dict[type[AppError], int] = {
    ValidationAppError: 400,
    SecretMismatchAppError: 403,
    NotFoundAppError: 404,
    RateLimitedAppError: 429,
    CapacityExceededAppError: 507,
}


def status_for(exc: AppError) -> int:
    for error_type, status_code in STATUS_BY_ERROR.items():
        if isinstance(exc, error_type):
            return status_code
    return 500


def _rate_limit_headers(request: Request, exc: AppError) -> dict[str, str]:
    app_settings = getattr(request.app.state, "settings", None)
    if app_settings is None or not app_settings.rate_limit.include_headers:
        return {}

    details = exc.details or {}
    return {
        "Retry-After": str(details.get("retry_after", 0)),
        "X-RateLimit-Limit": str(details.get("limit", "")),
        "X-RateLimit-Remaining": str(details.get("remaining", "")),
        "X-RateLimit-Reset": str(details.get("reset_at", "")),
    }


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render an AppError as ``{"error": {code, message, request_id, details?}}``.

    Args:
        request: FastAPI request object.
        exc: AppError instance (or subclass).

    Returns:
        JSONResponse with the status mapped from the error type.
    """
    status_code = status_for(exc)

    log = logger.warning if status_code == 429 or status_code >= 500 else logger.info
    log(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "status_code": status_code,
            "request_path": request.url.path,
            "request_method": request.method,
        },
    )

    error_content = {
        "code": exc.code,
        "message": exc.message,
        "request_id": get_request_id(),
    }
    if exc.details:
        error_content["details"] = dict(exc.details)

    headers = _rate_limit_headers(request, exc) if isinstance(exc, RateLimitedAppError) else {}

    return JSONResponse(
        status_code=status_code,
        content={"error": error_content},
        headers=headers or None,
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors.

    Logs the failure and returns a generic message; no stack traces or
    exception text reach the client.
    """
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
        },
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
                "request_id": get_request_id(),
            }
        },
    )


def setup_exception_handlers(app) -> None:
    """Register the AppError handler and the catch-all fallback on ``app``."""
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
