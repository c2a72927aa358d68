"""
Exception Handlers
==================

Global exception handlers for consistent error responses.

Every error renders as ``{"detail": ...}`` with optional ``code``, ``requestId``
and ``pages`` keys; the HTTP status carries the error kind.
"""

import logging
import uuid
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

from notesplit.api.schemas.errors import ErrorResponse
from notesplit.shared.context import get_request_id
from notesplit.shared.exceptions import AppException, ErrorCode
from notesplit.shared.messages import ERROR_MESSAGES

logger = logging.getLogger(__name__)


def _resolve_request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None) or get_request_id()


def _create_error_response(
    request: Request,
    detail: str,
    status_code: int,
    code: str | None = None,
    pages: list[int] | None = None,
    errors: list[dict[str, Any]] | None = None,
    request_id: str | None = None,
) -> JSONResponse:
    """Create a standardized error response."""
    body = ErrorResponse(
        detail=detail,
        code=code,
        request_id=request_id or _resolve_request_id(request),
        pages=pages,
        errors=errors,
    )
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json", by_alias=True, exclude_none=True),
    )


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    Handle application-specific exceptions.

    Converts AppException to a structured JSON response.
    """
    logger.warning(
        f"Application error: {exc.code.value} - {exc.message}",
        extra={
            "request_id": _resolve_request_id(request),
            "path": request.url.path,
            "method": request.method,
            "error_code": exc.code.value,
        },
    )

    return _create_error_response(
        request,
        detail=exc.message,
        status_code=exc.status_code,
        code=exc.code.value,
        pages=exc.details.get("pages"),
    )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """
    Handle request validation errors.

    Malformed bodies, wrong types and unknown fields all map to 400.
    """
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        errors.append(
            {
                "field": field,
                "message": error["msg"],
                "type": error["type"],
            }
        )

    logger.warning(
        f"Validation error: {len(errors)} errors",
        extra={
            "request_id": _resolve_request_id(request),
            "path": request.url.path,
            "method": request.method,
        },
    )

    if errors:
        first = errors[0]
        detail = f"{ERROR_MESSAGES['validation_error']}: {first['field']}: {first['message']}"
    else:
        detail = ERROR_MESSAGES["validation_error"]

    return _create_error_response(
        request,
        detail=detail,
        status_code=400,
        code=ErrorCode.VALIDATION_ERROR.value,
        errors=errors,
    )


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Handle unhandled exceptions.

    Logs the full exception and returns a safe error message.
    Never exposes stack traces or internal details to clients.
    """
    request_id = _resolve_request_id(request) or str(uuid.uuid4())

    logger.exception(
        f"Unhandled exception: {type(exc).__name__}: {exc}",
        extra={
            "request_id": request_id,
            "path": request.url.path,
            "method": request.method,
        },
    )

    return _create_error_response(
        request,
        detail=ERROR_MESSAGES["internal_error"],
        status_code=500,
        code=ErrorCode.INTERNAL_ERROR.value,
        request_id=request_id,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register all exception handlers with the FastAPI app.

    Args:
        app: FastAPI application instance
    """
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
