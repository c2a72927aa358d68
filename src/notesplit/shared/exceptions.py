"""
Application Exceptions
======================

Single exception hierarchy for the service. Every error the HTTP layer can
render derives from ``AppException`` and carries its own status code.
"""

from enum import Enum
from typing import Any

from notesplit.shared.messages import ERROR_MESSAGES


class ErrorCode(str, Enum):
    """Machine-readable error codes."""

    VALIDATION_ERROR = "validation_error"
    NOT_FOUND = "not_found"
    ALLOCATION_CONFLICT = "allocation_conflict"
    DOCUMENT_IN_USE = "document_in_use"
    PAYLOAD_TOO_LARGE = "payload_too_large"
    UNSUPPORTED_MEDIA_TYPE = "unsupported_media_type"
    PDF_CORRUPT = "pdf_corrupt"
    PDF_ENCRYPTED = "pdf_encrypted"
    EMPTY_SELECTION = "empty_selection"
    EXTRACTOR_TRANSIENT = "extractor_transient"
    EXTRACTOR_PERMANENT = "extractor_permanent"
    QUOTA_EXCEEDED = "quota_exceeded"
    EXTRACTOR_UNAVAILABLE = "extractor_unavailable"
    CANCELLED = "cancelled"
    TIMEOUT = "timeout"
    INTERNAL_ERROR = "internal_error"


class AppException(Exception):
    """Base class for all application errors."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    status_code: int = 500

    def __init__(self, message: str | None = None, details: dict[str, Any] | None = None):
        self.message = message or ERROR_MESSAGES.get(self.code.value, ERROR_MESSAGES["default"])
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(AppException):
    code = ErrorCode.VALIDATION_ERROR
    status_code = 400


class NotFoundError(AppException):
    code = ErrorCode.NOT_FOUND
    status_code = 404

    def __init__(self, resource: str, identifier: str):
        self.resource = resource
        self.identifier = identifier
        super().__init__(
            ERROR_MESSAGES["not_found"].format(resource=resource, identifier=identifier),
            details={"resource": resource, "identifier": identifier},
        )


class AllocationConflictError(AppException):
    """Raised when one or more requested pages already belong to another note."""

    code = ErrorCode.ALLOCATION_CONFLICT
    status_code = 409

    def __init__(self, document_id: str, pages: list[int]):
        self.document_id = document_id
        self.pages = sorted(pages)
        super().__init__(
            ERROR_MESSAGES["allocation_conflict"].format(
                pages=", ".join(str(p) for p in self.pages)
            ),
            details={"pages": self.pages},
        )


class DocumentInUseError(AppException):
    code = ErrorCode.DOCUMENT_IN_USE
    status_code = 409

    def __init__(self, document_id: str, note_count: int):
        self.document_id = document_id
        self.note_count = note_count
        super().__init__(
            ERROR_MESSAGES["document_in_use"].format(count=note_count),
            details={"noteCount": note_count},
        )


class PayloadTooLargeError(AppException):
    code = ErrorCode.PAYLOAD_TOO_LARGE
    status_code = 413

    def __init__(self, limit_mb: int):
        self.limit_mb = limit_mb
        super().__init__(ERROR_MESSAGES["payload_too_large"].format(limit_mb=limit_mb))


class UnsupportedMediaTypeError(AppException):
    code = ErrorCode.UNSUPPORTED_MEDIA_TYPE
    status_code = 415


class PdfCorruptError(AppException):
    code = ErrorCode.PDF_CORRUPT
    status_code = 422


class PdfEncryptedError(AppException):
    code = ErrorCode.PDF_ENCRYPTED
    status_code = 422


class EmptySelectionError(AppException):
    code = ErrorCode.EMPTY_SELECTION
    status_code = 422


class ExtractorError(AppException):
    """Base class for failures talking to the page classification model."""

    code = ErrorCode.EXTRACTOR_UNAVAILABLE
    status_code = 503


class ExtractorTransientError(ExtractorError):
    """Retryable failure: timeouts, connection resets, 5xx and rate limits."""

    code = ErrorCode.EXTRACTOR_TRANSIENT


class ExtractorPermanentError(ExtractorError):
    """Non-retryable failure, or a transient one that exhausted its retries."""

    code = ErrorCode.EXTRACTOR_PERMANENT


class QuotaExceededError(ExtractorPermanentError):
    code = ErrorCode.QUOTA_EXCEEDED


class JobCancelledError(AppException):
    """A batch job stopped because its client went away."""

    code = ErrorCode.CANCELLED
    status_code = 499


class JobTimeoutError(AppException):
    code = ErrorCode.TIMEOUT
    status_code = 504


class InternalError(AppException):
    code = ErrorCode.INTERNAL_ERROR
    status_code = 500
