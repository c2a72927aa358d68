from pydantic import ConfigDict, Field

from notesplit.api.schemas.base import CamelModel, UtcDateTime
from notesplit.core.documents.domain.delivery_note import NoteOrigin


class DeliveryNoteCreate(CamelModel):
    """Manual note creation. Text fields are sanitised server-side."""

    document_id: str = Field(..., min_length=1)
    display_name: str
    company_name: str
    page_numbers: list[int]
    delivery_date: str | None = None
    delivery_note_number: str | None = None
    shipping_id: str | None = None
    customer_number: str | None = None


class DeliveryNoteUpdate(CamelModel):
    """Metadata edit. Names, page numbers and the owning document cannot change."""

    model_config = ConfigDict(extra="forbid")

    delivery_date: str | None = None
    delivery_note_number: str | None = None
    shipping_id: str | None = None
    customer_number: str | None = None


class DeliveryNoteResponse(CamelModel):
    id: str
    document_id: str
    display_name: str
    company_name: str
    delivery_date: str | None = None
    delivery_note_number: str | None = None
    shipping_id: str | None = None
    customer_number: str | None = None
    created_at: UtcDateTime
    page_numbers: list[int]
    origin: NoteOrigin


class DeliveryNoteCreatedResponse(CamelModel):
    id: str
    status: str = "created"


class DeliveryNoteDeleteResponse(CamelModel):
    success: bool = True
    freed_pages: list[int]
