from pydantic import AliasChoices, Field

from notesplit.api.schemas.base import CamelModel, UtcDateTime


class DocumentResponse(CamelModel):
    """Response model for document details."""

    id: str
    original_filename: str
    upload_date: UtcDateTime = Field(..., validation_alias=AliasChoices("uploaded_at", "uploadDate", "upload_date"))
    file_hash: str = Field(..., validation_alias=AliasChoices("content_hash", "fileHash", "file_hash"))
    page_count: int


class DocumentDeleteResponse(CamelModel):
    success: bool = True
    deleted_notes: list[str] = Field(default_factory=list)


class AllocationResponse(CamelModel):
    """Which note owns each allocated page of a document."""

    document_id: str
    page_count: int
    allocations: dict[int, str]
    unassigned_pages: list[int]
