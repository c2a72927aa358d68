"""
Delivery Note Service
=====================

Create, edit, delete and render delivery notes.

Creation and deletion go through ``AllocationRegistry.transaction`` so a
note row never exists without its page allocations, or the other way
round. Rendering happens outside the lock.
"""

import asyncio
import hashlib
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from notesplit.core.allocation.registry import AllocationRegistry
from notesplit.core.documents.domain.delivery_note import DeliveryNote, NoteOrigin
from notesplit.core.documents.domain.document import Document
from notesplit.core.documents.infrastructure.repositories import (
    SqlDeliveryNoteRepository,
    SqlDocumentRepository,
)
from notesplit.core.pdf.engine import PdfEngine
from notesplit.core.storage.blob_store import BlobNotFoundError, BlobStorePort
from notesplit.shared.exceptions import NotFoundError, ValidationError
from notesplit.shared.messages import ERROR_MESSAGES
from notesplit.shared.sanitize import MAX_TEXT_LENGTH, sanitize_text

logger = logging.getLogger(__name__)

# Minimum lengths after sanitising; display names may be a single character
MIN_LENGTHS = {"display_name": 1, "company_name": 2}

OPTIONAL_TEXT_FIELDS = ("delivery_date", "delivery_note_number", "shipping_id", "customer_number")
# Names and page numbers are fixed at creation
EDITABLE_FIELDS = OPTIONAL_TEXT_FIELDS


def subset_cache_key(source_hash: str, page_numbers: Sequence[int]) -> str:
    """Blob key of the derived PDF for ``page_numbers`` of a source."""
    pages = ",".join(str(p) for p in sorted(page_numbers))
    return hashlib.sha256(f"{source_hash}:{pages}".encode()).hexdigest()


async def collect_subsets(
    session: AsyncSession,
    blobs: BlobStorePort,
    content_hash: str,
    page_sets: Sequence[Sequence[int]],
) -> int:
    """
    Delete cached subset PDFs that no remaining note of the source renders.

    Must run under ``blobs.guard(content_hash)``, after the notes that used
    ``page_sets`` are committed as deleted. Returns how many were dropped.
    """
    notes = SqlDeliveryNoteRepository(session)
    in_use = {tuple(sorted(pages)) for pages in await notes.page_sets_for_content(content_hash)}
    dropped = 0
    for pages in {tuple(sorted(p)) for p in page_sets}:
        if pages not in in_use:
            await blobs.delete(subset_cache_key(content_hash, pages))
            dropped += 1
    return dropped


@dataclass
class NoteDraft:
    """A note about to be created, before validation."""

    document_id: str
    display_name: str
    company_name: str
    page_numbers: list[int]
    delivery_date: str | None = None
    delivery_note_number: str | None = None
    shipping_id: str | None = None
    customer_number: str | None = None
    origin: NoteOrigin = NoteOrigin.MANUAL


def _clean_required(name: str, value: str | None, min_length: int) -> str:
    cleaned = sanitize_text(value) or ""
    if not min_length <= len(cleaned) <= MAX_TEXT_LENGTH:
        raise ValidationError(
            f"{name} must be between {min_length} and {MAX_TEXT_LENGTH} characters"
        )
    return cleaned


def _clean_optional(name: str, value: str | None) -> str | None:
    cleaned = sanitize_text(value)
    if not cleaned:
        return None
    if len(cleaned) > MAX_TEXT_LENGTH:
        raise ValidationError(f"{name} must be at most {MAX_TEXT_LENGTH} characters")
    return cleaned


def normalise_pages(page_numbers: Sequence[int], page_count: int) -> list[int]:
    """
    Validate and sort a page selection against a document.

    Raises:
        ValidationError: No pages, duplicates or pages outside ``1..page_count``.
    """
    if not page_numbers:
        raise ValidationError(ERROR_MESSAGES["empty_selection"])
    pages = sorted(page_numbers)
    if len(set(pages)) != len(pages):
        raise ValidationError(ERROR_MESSAGES["duplicate_pages"])
    if pages[0] < 1 or pages[-1] > page_count:
        raise ValidationError(ERROR_MESSAGES["page_out_of_range"].format(page_count=page_count))
    return pages


class DeliveryNoteService:
    """Application service for delivery notes."""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        blob_store: BlobStorePort,
        pdf_engine: PdfEngine,
        registry: AllocationRegistry,
    ):
        self._session_factory = session_factory
        self._blobs = blob_store
        self._pdf = pdf_engine
        self._registry = registry

    def _build_note(self, draft: NoteDraft, document: Document) -> DeliveryNote:
        return DeliveryNote(
            document_id=document.id,
            display_name=_clean_required("displayName", draft.display_name, MIN_LENGTHS["display_name"]),
            company_name=_clean_required("companyName", draft.company_name, MIN_LENGTHS["company_name"]),
            delivery_date=_clean_optional("deliveryDate", draft.delivery_date),
            delivery_note_number=_clean_optional("deliveryNoteNumber", draft.delivery_note_number),
            shipping_id=_clean_optional("shippingId", draft.shipping_id),
            customer_number=_clean_optional("customerNumber", draft.customer_number),
            page_numbers=normalise_pages(draft.page_numbers, document.page_count),
            origin=draft.origin,
        )

    async def create_many(self, document_id: str, drafts: Sequence[NoteDraft]) -> list[DeliveryNote]:
        """
        Create several notes on one document, all or none.

        Raises:
            NotFoundError: Unknown document.
            ValidationError: Invalid draft.
            AllocationConflictError: A page is taken, by an existing note or
                by an earlier draft in the same call.
        """
        async with self._registry.transaction(document_id) as uow:
            document = await SqlDocumentRepository(uow.session).get(document_id)
            if document is None:
                raise NotFoundError("Document", document_id)

            notes_repo = SqlDeliveryNoteRepository(uow.session)
            created: list[DeliveryNote] = []
            for draft in drafts:
                note = await notes_repo.add(self._build_note(draft, document))
                await self._registry.allocate(uow.session, document_id, note.page_numbers, note.id)
                created.append(note)

        for note in created:
            logger.info(
                f"Created {note.origin.value} note {note.id} on {document_id} pages={note.page_numbers}"
            )
        return created

    async def create(self, draft: NoteDraft) -> DeliveryNote:
        notes = await self.create_many(draft.document_id, [draft])
        return notes[0]

    async def get(self, note_id: str) -> DeliveryNote:
        async with self._session_factory() as session:
            note = await SqlDeliveryNoteRepository(session).get(note_id)
        if note is None:
            raise NotFoundError("DeliveryNote", note_id)
        return note

    async def list_notes(self, document_id: str | None = None) -> list[DeliveryNote]:
        async with self._session_factory() as session:
            return await SqlDeliveryNoteRepository(session).list_notes(document_id=document_id)

    async def update(self, note_id: str, changes: dict[str, Any]) -> DeliveryNote:
        """
        Edit the optional metadata fields. ``None`` clears a field.

        Raises:
            NotFoundError: Unknown note.
            ValidationError: Unknown field, or invalid value.
        """
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

        note = await self.get(note_id)
        async with self._registry.transaction(note.document_id) as uow:
            note = await SqlDeliveryNoteRepository(uow.session).get(note_id)
            if note is None:
                raise NotFoundError("DeliveryNote", note_id)

            for name, value in changes.items():
                setattr(note, name, _clean_optional(name, value))
            await uow.session.flush()

        logger.info(f"Updated note {note_id}: {sorted(changes)}")
        return note

    async def delete(self, note_id: str) -> list[int]:
        """
        Delete a note and free its pages.

        Returns the freed page numbers, sorted ascending. The note's cached
        PDF is dropped unless another note renders the same pages.

        Raises:
            NotFoundError: Unknown or already deleted note.
        """
        note = await self.get(note_id)
        async with self._registry.transaction(note.document_id) as uow:
            notes_repo = SqlDeliveryNoteRepository(uow.session)
            note = await notes_repo.get(note_id)
            if note is None:
                raise NotFoundError("DeliveryNote", note_id)
            document = await SqlDocumentRepository(uow.session).get(note.document_id)
            content_hash = document.content_hash
            page_numbers = list(note.page_numbers)
            freed = await self._registry.free(uow.session, note_id)
            await notes_repo.delete(note)

        logger.info(f"Deleted note {note_id}, freed pages {freed}")

        async with self._blobs.guard(content_hash):
            async with self._session_factory() as session:
                await collect_subsets(session, self._blobs, content_hash, [page_numbers])
        return freed

    def _render_subset(self, source: bytes, page_numbers: list[int]) -> bytes:
        with self._pdf.open(source) as handle:
            return self._pdf.build_subset_pdf(handle, page_numbers)

    async def render_pdf(self, note_id: str) -> tuple[DeliveryNote, bytes]:
        """
        The note's pages as a standalone PDF.

        The output depends only on the source bytes and the page list, so it
        is cached in the blob store and built on first request.

        Raises:
            NotFoundError: Unknown note, or its source PDF is no longer stored.
        """
        async with self._session_factory() as session:
            note = await SqlDeliveryNoteRepository(session).get(note_id)
            if note is None:
                raise NotFoundError("DeliveryNote", note_id)
            document = await SqlDocumentRepository(session).get(note.document_id)
            if document is None:
                raise NotFoundError("Document", note.document_id)

        key = subset_cache_key(document.content_hash, note.page_numbers)
        if await self._blobs.exists(key):
            try:
                return note, await self._blobs.get(key)
            except BlobNotFoundError:
                logger.debug(f"Cached subset {key} vanished, rebuilding")

        try:
            source = await self._blobs.get(document.blob_ref)
        except BlobNotFoundError as e:
            logger.error(f"Source blob {document.blob_ref} of document {document.id} is missing")
            raise NotFoundError("Source PDF", document.id) from e
        data = await asyncio.to_thread(self._render_subset, source, list(note.page_numbers))

        # A note deleted meanwhile must not leave a cached subset behind
        async with self._blobs.guard(document.content_hash):
            async with self._session_factory() as session:
                still_there = await SqlDeliveryNoteRepository(session).get(note_id) is not None
            if still_there:
                await self._blobs.put_keyed(key, data)
        logger.info(f"Rendered note {note_id} ({len(note.page_numbers)} pages, {len(data)} bytes)")
        return note, data
