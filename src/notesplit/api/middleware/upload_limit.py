"""
Upload Size Limit Middleware
============================

Rejects oversized multipart bodies from their ``Content-Length`` before the
body is read. Routes still check each file after reading, since chunked
requests carry no length.
"""

import logging
from collections.abc import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from notesplit.shared.context import get_request_id
from notesplit.shared.exceptions import ErrorCode
from notesplit.shared.messages import ERROR_MESSAGES

logger = logging.getLogger(__name__)

# Allowance for multipart boundaries and part headers.
MULTIPART_OVERHEAD_BYTES = 64 * 1024

SINGLE_UPLOAD_SUFFIX = "/documents/upload"
BATCH_UPLOAD_SUFFIX = "/documents/batch-process"


class UploadSizeLimitMiddleware(BaseHTTPMiddleware):
    """Per-route body limits for the upload endpoints."""

    def __init__(self, app, max_file_mb: int, max_batch_mb: int):
        super().__init__(app)
        self.max_file_mb = max_file_mb
        self.max_batch_mb = max_batch_mb

    def _limit_for(self, path: str) -> int | None:
        """Limit in MB for ``path``, or None when the path is not an upload."""
        if path.endswith(SINGLE_UPLOAD_SUFFIX):
            return self.max_file_mb
        if path.endswith(BATCH_UPLOAD_SUFFIX):
            return self.max_batch_mb
        return None

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.method != "POST":
            return await call_next(request)

        limit_mb = self._limit_for(request.url.path)
        content_length = request.headers.get("content-length")
        if limit_mb is None or not content_length or not content_length.isdigit():
            return await call_next(request)

        if int(content_length) > limit_mb * 1024 * 1024 + MULTIPART_OVERHEAD_BYTES:
            logger.warning(
                f"Rejected upload of {content_length} bytes to {request.url.path} (limit {limit_mb}MB)"
            )
            body = {
                "detail": ERROR_MESSAGES["payload_too_large"].format(limit_mb=limit_mb),
                "code": ErrorCode.PAYLOAD_TOO_LARGE.value,
            }
            request_id = getattr(request.state, "request_id", None) or get_request_id()
            if request_id:
                body["requestId"] = request_id
            return JSONResponse(status_code=413, content=body)

        return await call_next(request)
