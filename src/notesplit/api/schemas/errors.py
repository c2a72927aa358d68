"""
Error Response Schemas
======================

Pydantic model for the error envelope: ``{"detail": ...}`` plus optional
context keys.
"""

from pydantic import Field

from notesplit.api.schemas.base import CamelModel


class ErrorResponse(CamelModel):
    """Standard error response."""

    detail: str = Field(..., description="Human-readable error message, safe to display verbatim")
    code: str | None = Field(None, description="Machine-readable error code")
    request_id: str | None = Field(None, description="Request ID for correlation")
    pages: list[int] | None = Field(None, description="Offending pages on allocation conflicts")
    errors: list[dict] | None = Field(None, description="Field-level validation errors")

    model_config = {
        "json_schema_extra": {
            "example": {
                "detail": "Pages already allocated: 2",
                "code": "allocation_conflict",
                "requestId": "5f0c6a3e-1d2b-4c1e-9a51-0b2d7c9e8f11",
                "pages": [2],
            }
        }
    }
