from __future__ import annotations

import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Callable

from fastapi import Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import TimeoutError as SATimeoutError
from starlette.responses import Response

from revas.config import settings
from revas.core.errors import debug_details, error_response

_APP_START_MONOTONIC = time.monotonic()

_QUIET_PATHS = {"/health", "/healthz"}


def uptime_seconds() -> float:
    return time.monotonic() - _APP_START_MONOTONIC


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def _pool_status() -> str | None:
    try:
        from revas.database import engine

        return engine.pool.status()
    except Exception:
        return None


def _app_logger(request: Request) -> logging.Logger:
    logger = getattr(request.app.state, "logger", None)
    return logger or logging.getLogger("revas")


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render unhandled exceptions as a structured 500.

    The exception type and traceback are only echoed back outside production.
    """

    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    extra = {
        "request_id": request_id,
        "method": request.method,
        "path": request.url.path,
        "exception_type": type(exc).__name__,
    }
    _app_logger(request).exception("unhandled_exception", extra=extra)

    response = error_response(
        status_code=500,
        code="INTERNAL_SERVER_ERROR",
        message="Internal server error. Please try again later.",
        request_id=request_id,
        details=debug_details(exc, include=not settings.is_production),
    )

    # Keep CORS headers on real 500s so browsers do not report an opaque CORS failure.
    origin = request.headers.get("origin")
    if origin:
        allowed = set(settings.cors_origins or [])
        if origin in allowed or "*" in allowed:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Vary"] = "Origin"
    return response


async def request_logging_middleware(request: Request, call_next: Callable) -> Response:
    """Request-level logging middleware.

    Adds/propagates X-Request-ID and measures request duration.
    Does not log request/response bodies.
    """

    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    logger = _app_logger(request)
    start = time.perf_counter()

    try:
        response: Response = await call_next(request)
    except SATimeoutError as exc:
        duration_ms = (time.perf_counter() - start) * 1000.0
        logger.error(
            "db_pool_timeout",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "duration_ms": round(duration_ms, 2),
                "pool_status": _pool_status(),
                "error": str(exc),
            },
        )
        raise
    except Exception:
        duration_ms = (time.perf_counter() - start) * 1000.0
        extra = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "duration_ms": round(duration_ms, 2),
        }
        logger.exception("http_request_failed", extra=extra)
        raise

    duration_ms = (time.perf_counter() - start) * 1000.0

    if duration_ms >= settings.slow_request_ms:
        logger.info(
            "slow_request",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "duration_ms": round(duration_ms, 2),
                "pool_status": _pool_status(),
            },
        )

    if request.url.path not in _QUIET_PATHS:
        logger.info(
            "http_request",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": round(duration_ms, 2),
            },
        )

    response.headers.setdefault("X-Request-ID", request_id)
    return response
