"""Exception handlers that give every error response the same JSON body.

    {
        "error": {
            "code": "TASK_NOT_FOUND",
            "message": "Task not found or expired",
            "details": {"task_id": "..."},      # optional
            "request_id": "1a2b3c4d",           # when known
            "timestamp": "2026-01-01T00:00:00+00:00"
        }
    }

Sources, in handler order:
- ``RelayError`` subclasses carry their own status and code
- Starlette routing errors (unknown path 404, wrong method 405)
- request validation errors, reported as 400 rather than FastAPI's 422
- anything else becomes a 500 without internal detail
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from captcha_relay.core.exceptions import RelayError
from captcha_relay.core.logging import get_logger, sanitize_error

logger = get_logger(__name__)

_ROUTING_ERROR_CODES = {
    status.HTTP_404_NOT_FOUND: "NOT_FOUND",
    status.HTTP_405_METHOD_NOT_ALLOWED: "METHOD_NOT_ALLOWED",
}


def get_request_id(request: Request) -> str | None:
    """Request id set by RequestIDMiddleware, else the client's header."""
    request_id: str | None = getattr(request.state, "request_id", None)
    return request_id or request.headers.get("X-Request-ID")


def build_error_response(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
    headers: Mapping[str, str] | None = None,
) -> JSONResponse:
    body: dict[str, Any] = {"code": code, "message": message}
    if details:
        body["details"] = details
    request_id = get_request_id(request)
    if request_id:
        body["request_id"] = request_id
    body["timestamp"] = datetime.now(UTC).isoformat()
    return JSONResponse(status_code=status_code, content={"error": body}, headers=headers)


def _log_extra(request: Request, status_code: int, **extra: Any) -> dict[str, Any]:
    return {
        "method": request.method,
        "path": request.url.path,
        "status_code": status_code,
        "request_id": get_request_id(request),
        **extra,
    }


async def relay_exception_handler(request: Request, exc: RelayError) -> JSONResponse:
    extra = _log_extra(request, exc.status_code, error_code=exc.error_code)
    if exc.status_code >= 500:
        logger.error(f"{exc.error_code}: {exc.message}", extra=extra)
    elif exc.status_code == status.HTTP_401_UNAUTHORIZED:
        # Never log the presented credential, only that it was wrong
        logger.warning(f"Rejected credential on {request.url.path}", extra=extra)
    else:
        logger.info(f"{exc.error_code}: {exc.message}", extra=extra)

    return build_error_response(
        request, exc.status_code, exc.error_code, exc.message, details=exc.details
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = _ROUTING_ERROR_CODES.get(exc.status_code, "HTTP_ERROR")
    message = str(exc.detail) if exc.detail else "Request failed"
    logger.info(
        f"{code}: {request.method} {request.url.path}",
        extra=_log_extra(request, exc.status_code),
    )
    return build_error_response(request, exc.status_code, code, message, headers=exc.headers)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ())) or "body",
            "message": error.get("msg", "Invalid value"),
        }
        for error in exc.errors()
    ]
    logger.info(
        f"Request validation failed ({len(errors)} error(s))",
        extra=_log_extra(request, status.HTTP_400_BAD_REQUEST),
    )
    first = errors[0] if errors else {"field": "body", "message": "Invalid request"}
    return build_error_response(
        request,
        status.HTTP_400_BAD_REQUEST,
        "VALIDATION_ERROR",
        f"{first['field']}: {first['message']}",
        details={"errors": errors},
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"Unhandled {type(exc).__name__}: {sanitize_error(exc)}",
        extra=_log_extra(request, status.HTTP_500_INTERNAL_SERVER_ERROR),
        exc_info=True,
    )
    return build_error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "INTERNAL_ERROR",
        "An unexpected error occurred",
    )


def register_exception_handlers(app: FastAPI) -> None:
    # Starlette's handler signature is typed for Exception only
    app.add_exception_handler(RelayError, relay_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(
        StarletteHTTPException,
        http_exception_handler,  # type: ignore[arg-type]
    )
    app.add_exception_handler(
        RequestValidationError,
        validation_exception_handler,  # type: ignore[arg-type]
    )
    app.add_exception_handler(Exception, generic_exception_handler)
