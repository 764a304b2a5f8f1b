"""Domain error hierarchy and the handlers that render it as JSON.

Every error carries a stable ``code`` and an HTTP ``status_code`` at class
level; callers supply ``message`` and optional ``details``. Conflict-style
errors are marked ``retryable`` so clients can back off and try again.
"""

from __future__ import annotations

import traceback
import uuid
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class RevasError(Exception):
    code: str = "APP_ERROR"
    status_code: int = 500
    retryable: bool = False

    def __init__(self, message: str, details: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or []


class ValidationError(RevasError):
    code = "VALIDATION_ERROR"
    status_code = 400


class InvalidTransition(ValidationError):
    code = "INVALID_TRANSITION"

    def __init__(self, current: str, requested: str) -> None:
        super().__init__(
            f"Invalid status transition from '{current}' to '{requested}'",
            details=[{"current_status": current, "requested_status": requested}],
        )
        self.current = current
        self.requested = requested


class NoCounterpartManager(ValidationError):
    code = "NO_COUNTERPART_MANAGER"


class AuthenticationError(RevasError):
    code = "UNAUTHORIZED"
    status_code = 401


class AuthorizationError(RevasError):
    code = "FORBIDDEN"
    status_code = 403


class NotFoundError(RevasError):
    code = "NOT_FOUND"
    status_code = 404


class ConflictError(RevasError):
    code = "CONFLICT"
    status_code = 409
    retryable = True


class RateLimited(ConflictError):
    code = "RATE_LIMITED"
    status_code = 429


class ExternalDependencyError(RevasError):
    code = "EXTERNAL_DEPENDENCY_FAILED"
    status_code = 502


def missing_fields_error(missing: list[str]) -> ValidationError:
    return ValidationError(
        f"Missing required fields: {', '.join(missing)}",
        details=[{"field": name, "message": "required"} for name in missing],
    )


def _request_id(request: Request) -> str:
    return request.headers.get("x-request-id") or str(uuid.uuid4())


def error_response(
    *,
    status_code: int,
    code: str,
    message: str,
    request_id: str,
    details: list[dict[str, Any]] | None = None,
    retryable: bool = False,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": code,
            "message": message,
            "details": details or [],
            "retryable": retryable,
            "request_id": request_id,
        },
        headers={"X-Request-ID": request_id},
    )


async def revas_error_handler(request: Request, exc: RevasError) -> JSONResponse:
    return error_response(
        status_code=exc.status_code,
        code=exc.code,
        message=exc.message,
        request_id=_request_id(request),
        details=exc.details,
        retryable=exc.retryable,
    )


async def request_validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    details = [
        {"field": ".".join(str(loc) for loc in err.get("loc", [])), "message": err.get("msg", "")}
        for err in exc.errors()
    ]
    return error_response(
        status_code=422,
        code="VALIDATION_ERROR",
        message="Request validation failed",
        request_id=_request_id(request),
        details=details,
    )


def debug_details(exc: BaseException, *, include: bool) -> list[dict[str, Any]]:
    if not include:
        return []
    return [
        {
            "exception_type": type(exc).__name__,
            "traceback": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
        }
    ]
