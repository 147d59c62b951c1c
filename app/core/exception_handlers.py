"""
Global exception handlers for the FastAPI application.
Provides a consistent error body (``detail`` + ``code``) across all endpoints.
"""

from __future__ import annotations

import uuid
from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.exceptions import AppException, ErrorCode

logger = structlog.get_logger("sparkmatch.errors")


def generate_request_id() -> str:
    """Generate a unique request ID for error tracing"""
    return str(uuid.uuid4())[:8]


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Render ``AppException`` and its subclasses with their error code."""
    request_id = generate_request_id()

    logger.warning(
        "app_exception",
        message=exc.message,
        code=exc.code.value,
        status=exc.status_code,
        request_id=request_id,
        path=request.url.path,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers={"X-Request-ID": request_id},
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Render request validation failures with their field locations."""
    request_id = generate_request_id()

    errors = [
        {
            "loc": list(error["loc"]),
            "msg": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]

    logger.warning(
        "request_validation_failed",
        errors=errors,
        request_id=request_id,
        path=request.url.path,
    )

    response_body: dict[str, Any] = {
        "detail": errors,
        "code": ErrorCode.VALIDATION_ERROR.value,
    }

    return JSONResponse(
        status_code=422,
        content=response_body,
        headers={"X-Request-ID": request_id},
    )


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    """Convert plain HTTP exceptions (e.g. unknown routes) to the same format."""
    request_id = generate_request_id()

    status_to_code = {
        400: ErrorCode.VALIDATION_ERROR,
        403: ErrorCode.FORBIDDEN,
        404: ErrorCode.NOT_FOUND,
        409: ErrorCode.CONFLICT,
        422: ErrorCode.VALIDATION_ERROR,
        503: ErrorCode.UNAVAILABLE,
    }
    error_code = status_to_code.get(exc.status_code, ErrorCode.INTERNAL)

    logger.warning(
        "http_exception",
        detail=exc.detail,
        status=exc.status_code,
        request_id=request_id,
        path=request.url.path,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail or "An error occurred", "code": error_code.value},
        headers={"X-Request-ID": request_id},
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected exceptions; logs the traceback."""
    request_id = generate_request_id()

    logger.exception(
        "unhandled_exception",
        request_id=request_id,
        path=request.url.path,
        error=str(exc),
    )

    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "code": ErrorCode.INTERNAL.value},
        headers={"X-Request-ID": request_id},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
