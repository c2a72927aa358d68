"""
Observability Middleware
=========================

Middleware for request correlation and structured request logging.
"""

import time
import uuid
from collections.abc import Callable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from notesplit.shared.context import reset_request_id, set_request_id

logger = structlog.stdlib.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Assigns a correlation ID to each request and binds it into the logging context.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())

        request.state.request_id = request_id
        token = set_request_id(request_id)
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            reset_request_id(token)
            structlog.contextvars.clear_contextvars()


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs every request with latency, status and path.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()

        path = request.url.path
        method = request.method

        # Skip health checks to avoid log noise
        if path.endswith("/health"):
            return await call_next(request)

        try:
            response = await call_next(request)
        except Exception:
            logger.error(
                "request_exception",
                method=method,
                path=path,
                status_code=500,
                latency_ms=round((time.perf_counter() - start_time) * 1000, 2),
                exc_info=True,
            )
            raise

        log_kw = dict(
            method=method,
            path=path,
            status_code=response.status_code,
            latency_ms=round((time.perf_counter() - start_time) * 1000, 2),
            ip=request.client.host if request.client else None,
        )

        if response.status_code >= 500:
            logger.error("request_failed", **log_kw)
        elif response.status_code >= 400:
            logger.warning("request_bad_input", **log_kw)
        else:
            logger.info("request_processed", **log_kw)

        return response
