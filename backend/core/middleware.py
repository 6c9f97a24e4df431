"""FastAPI middleware for request tracking, timing, and error handling.

Adds:
- X-Request-ID header (generated if not provided)
- X-Process-Time header (request duration)
- Structured logging per request
- Error serialization: ``{"detail", "code", "request_id"}``
"""

import logging
import time
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from core.exceptions import AccessControlError, BadRequestError, InternalServerError
from core.logging_config import bind_request_context, clear_request_context

logger = logging.getLogger(__name__)

_QUIET_PATHS = ("/api/health", "/api/v1/health")


def _error_body(request: Request, message, code: str, **extra) -> dict:
    body = {
        "detail": message,
        "code": code,
        "request_id": getattr(request.state, "request_id", None),
    }
    body.update(extra)
    return body


class RequestTrackingMiddleware(BaseHTTPMiddleware):
    """Add request ID and timing to every request/response."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID", str(uuid4()))
        request.state.request_id = request_id
        clear_request_context()
        bind_request_context(request_id=request_id)

        start_time = time.monotonic()

        try:
            response = await call_next(request)
        except Exception as exc:
            duration_ms = (time.monotonic() - start_time) * 1000
            logger.error(
                "Unhandled exception",
                extra={
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "duration_ms": round(duration_ms, 2),
                    "error": str(exc),
                },
                exc_info=True,
            )
            # Callers never see internal detail; it is in the log line above
            return JSONResponse(
                status_code=500,
                content=_error_body(request, InternalServerError().message, InternalServerError.code),
                headers={"X-Request-ID": request_id},
            )

        duration_ms = (time.monotonic() - start_time) * 1000

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = f"{duration_ms:.2f}ms"

        log_level = logging.WARNING if response.status_code >= 400 else logging.INFO
        if request.url.path not in _QUIET_PATHS:
            logger.log(
                log_level,
                f"{request.method} {request.url.path} -> {response.status_code} ({duration_ms:.0f}ms)",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": round(duration_ms, 2),
                    "client_ip": request.client.host if request.client else None,
                },
            )

        return response


def setup_exception_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(AccessControlError)
    async def access_control_error_handler(request: Request, exc: AccessControlError):
        if exc.status_code >= 500:
            logger.error("Internal error: %s", exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(request, exc.message, exc.code),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = [
            {"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")}
            for e in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content=_error_body(request, "Invalid request", BadRequestError.code, errors=errors),
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return JSONResponse(
            status_code=400,
            content=_error_body(request, str(exc), BadRequestError.code),
        )
