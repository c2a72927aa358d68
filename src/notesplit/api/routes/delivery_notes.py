"""
Delivery Note API Routes
========================

CRUD for delivery notes and download of their pages as a PDF.
"""

import logging
from urllib.parse import quote

from fastapi import APIRouter, Depends, Query, Response, status

from notesplit.api.deps import get_note_service
from notesplit.api.schemas.delivery_notes import (
    DeliveryNoteCreate,
    DeliveryNoteCreatedResponse,
    DeliveryNoteDeleteResponse,
    DeliveryNoteResponse,
    DeliveryNoteUpdate,
)
from notesplit.core.documents.application.delivery_note_service import DeliveryNoteService, NoteDraft
from notesplit.core.documents.domain.delivery_note import DeliveryNote
from notesplit.shared.sanitize import sanitize_filename

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/delivery-notes", tags=["delivery-notes"])


def _pdf_filename(note: DeliveryNote) -> str:
    name = sanitize_filename(note.display_name)
    if not name.lower().endswith(".pdf"):
        name = f"{name}.pdf"
    return name


def _content_disposition(disposition: str, filename: str) -> str:
    """Header value with an ASCII fallback plus the UTF-8 name."""
    fallback = "".join(c if c.isascii() else "_" for c in filename)
    return f"{disposition}; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"


def _pdf_response(note: DeliveryNote, data: bytes, disposition: str) -> Response:
    return Response(
        content=data,
        media_type="application/pdf",
        headers={"Content-Disposition": _content_disposition(disposition, _pdf_filename(note))},
    )


@router.get(
    "",
    response_model=list[DeliveryNoteResponse],
    summary="List Delivery Notes",
    description="All delivery notes, optionally restricted to one document.",
)
async def list_delivery_notes(
    document_id: str | None = Query(None, description="Only notes of this document"),
    document_id_camel: str | None = Query(None, alias="documentId", include_in_schema=False),
    notes: DeliveryNoteService = Depends(get_note_service),
) -> list[DeliveryNoteResponse]:
    items = await notes.list_notes(document_id=document_id or document_id_camel)
    return [DeliveryNoteResponse.model_validate(note) for note in items]


@router.post(
    "",
    response_model=DeliveryNoteCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Delivery Note",
    description="""
    Create a note from a page selection. The pages are sorted and must all
    be free; a clash returns 409 listing the taken pages.
    """,
)
async def create_delivery_note(
    body: DeliveryNoteCreate,
    notes: DeliveryNoteService = Depends(get_note_service),
) -> DeliveryNoteCreatedResponse:
    note = await notes.create(NoteDraft(**body.model_dump()))
    return DeliveryNoteCreatedResponse(id=note.id)


@router.get(
    "/{note_id}",
    response_model=DeliveryNoteResponse,
    summary="Get Delivery Note",
)
async def get_delivery_note(
    note_id: str,
    notes: DeliveryNoteService = Depends(get_note_service),
) -> DeliveryNoteResponse:
    note = await notes.get(note_id)
    return DeliveryNoteResponse.model_validate(note)


@router.patch(
    "/{note_id}",
    response_model=DeliveryNoteResponse,
    summary="Update Delivery Note",
    description="Partial update of the note's metadata. Page numbers cannot change.",
)
async def update_delivery_note(
    note_id: str,
    body: DeliveryNoteUpdate,
    notes: DeliveryNoteService = Depends(get_note_service),
) -> DeliveryNoteResponse:
    note = await notes.update(note_id, body.model_dump(exclude_unset=True))
    return DeliveryNoteResponse.model_validate(note)


@router.delete(
    "/{note_id}",
    response_model=DeliveryNoteDeleteResponse,
    summary="Delete Delivery Note",
    description="Delete a note and return the pages it released.",
)
async def delete_delivery_note(
    note_id: str,
    notes: DeliveryNoteService = Depends(get_note_service),
) -> DeliveryNoteDeleteResponse:
    freed = await notes.delete(note_id)
    return DeliveryNoteDeleteResponse(success=True, freed_pages=freed)


@router.get(
    "/{note_id}/download",
    summary="Download Delivery Note PDF",
    response_class=Response,
    responses={200: {"content": {"application/pdf": {}}}},
)
async def download_delivery_note(
    note_id: str,
    notes: DeliveryNoteService = Depends(get_note_service),
) -> Response:
    note, data = await notes.render_pdf(note_id)
    return _pdf_response(note, data, "attachment")


@router.get(
    "/{note_id}/preview",
    summary="Preview Delivery Note PDF",
    response_class=Response,
    responses={200: {"content": {"application/pdf": {}}}},
)
async def preview_delivery_note(
    note_id: str,
    notes: DeliveryNoteService = Depends(get_note_service),
) -> Response:
    note, data = await notes.render_pdf(note_id)
    return _pdf_response(note, data, "inline")
