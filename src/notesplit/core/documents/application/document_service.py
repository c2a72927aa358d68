"""
Document Service
================

Ingest, lookup and deletion of source PDFs.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from notesplit.core.allocation.registry import AllocationRegistry
from notesplit.core.documents.application.delivery_note_service import collect_subsets
from notesplit.core.documents.domain.document import Document
from notesplit.core.documents.infrastructure.repositories import (
    SqlDeliveryNoteRepository,
    SqlDocumentRepository,
)
from notesplit.core.pdf.engine import PdfEngine, looks_like_pdf
from notesplit.core.storage.blob_store import BlobStorePort, sha256_hex
from notesplit.shared.exceptions import (
    DocumentInUseError,
    NotFoundError,
    PayloadTooLargeError,
    UnsupportedMediaTypeError,
    ValidationError,
)
from notesplit.shared.messages import ERROR_MESSAGES
from notesplit.shared.sanitize import sanitize_filename

logger = logging.getLogger(__name__)


@dataclass
class AllocationView:
    document: Document
    allocations: dict[int, str]

    @property
    def unassigned_pages(self) -> list[int]:
        return [p for p in range(1, self.document.page_count + 1) if p not in self.allocations]


class DocumentService:
    """
    Application service for source documents.

    Uploads are validated (size, ``%PDF-`` magic, readable page tree)
    before anything is written. Byte-identical uploads share one blob but
    each upload gets its own Document row.
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        blob_store: BlobStorePort,
        pdf_engine: PdfEngine,
        registry: AllocationRegistry,
        max_file_bytes: int,
        max_file_size_mb: int,
    ):
        self._session_factory = session_factory
        self._blobs = blob_store
        self._pdf = pdf_engine
        self._registry = registry
        self._max_file_bytes = max_file_bytes
        self._max_file_size_mb = max_file_size_mb

    def _count_pages(self, data: bytes) -> int:
        with self._pdf.open(data) as handle:
            return self._pdf.page_count(handle)

    def check_upload(self, data: bytes) -> None:
        """
        Cheap checks that need no parsing.

        Raises:
            PayloadTooLargeError: Above the per-file limit.
            ValidationError: Empty upload.
            UnsupportedMediaTypeError: Not starting with ``%PDF-``.
        """
        if len(data) > self._max_file_bytes:
            raise PayloadTooLargeError(self._max_file_size_mb)
        if not data:
            raise ValidationError(ERROR_MESSAGES["empty_file"])
        if not looks_like_pdf(data):
            raise UnsupportedMediaTypeError()

    async def ingest(self, filename: str | None, data: bytes) -> Document:
        """
        Store an uploaded PDF and record it.

        Raises:
            PayloadTooLargeError, ValidationError, UnsupportedMediaTypeError,
            PdfCorruptError, PdfEncryptedError
        """
        self.check_upload(data)
        safe_name = sanitize_filename(filename)

        page_count = await asyncio.to_thread(self._count_pages, data)
        content_hash = sha256_hex(data)

        # The blob must not be collected between the write and the commit
        async with self._blobs.guard(content_hash):
            _, blob_ref = await self._blobs.put(data)
            async with self._session_factory() as session:
                document = Document(
                    original_filename=safe_name,
                    content_hash=content_hash,
                    page_count=page_count,
                    blob_ref=blob_ref,
                )
                await SqlDocumentRepository(session).save(document)
                await session.commit()

        logger.info(
            f"Ingested document {document.id} ({safe_name}, {page_count} pages, hash={content_hash[:12]})"
        )
        return document

    async def get(self, document_id: str) -> Document:
        async with self._session_factory() as session:
            document = await SqlDocumentRepository(session).get(document_id)
        if document is None:
            raise NotFoundError("Document", document_id)
        return document

    async def list_documents(self, limit: int = 100, offset: int = 0) -> list[Document]:
        async with self._session_factory() as session:
            return await SqlDocumentRepository(session).list_documents(limit=limit, offset=offset)

    async def allocations(self, document_id: str) -> AllocationView:
        async with self._session_factory() as session:
            document = await SqlDocumentRepository(session).get(document_id)
            if document is None:
                raise NotFoundError("Document", document_id)
            allocations = await self._registry.allocated_pages(session, document_id)
        return AllocationView(document=document, allocations=allocations)

    async def delete(self, document_id: str, cascade: bool = False) -> list[str]:
        """
        Delete a document, and with ``cascade`` its delivery notes.

        Returns the ids of the notes removed with it.

        Raises:
            NotFoundError: Unknown document.
            DocumentInUseError: Notes still reference it and ``cascade`` is off.
        """
        async with self._registry.transaction(document_id) as uow:
            documents = SqlDocumentRepository(uow.session)
            document = await documents.get(document_id)
            if document is None:
                raise NotFoundError("Document", document_id)

            note_repo = SqlDeliveryNoteRepository(uow.session)
            notes = await note_repo.list_notes(document_id=document_id)
            if notes and not cascade:
                raise DocumentInUseError(document_id, len(notes))

            removed_notes = [(note.id, list(note.page_numbers)) for note in notes]
            for note in notes:
                await self._registry.free(uow.session, note.id)
                await note_repo.delete(note)
            content_hash = document.content_hash
            blob_ref = document.blob_ref
            await documents.delete(document)

        logger.info(f"Deleted document {document_id} with {len(removed_notes)} note(s)")

        await self._collect_blobs(content_hash, blob_ref, [pages for _, pages in removed_notes])
        return [note_id for note_id, _ in removed_notes]

    async def _collect_blobs(self, content_hash: str, blob_ref: str, page_sets: list[list[int]]) -> None:
        """
        Drop the source blob once no document references it, and cached
        subsets no remaining note renders.

        Reference counts are read under the content guard, after the delete
        committed, so a concurrent upload of the same bytes keeps its blob.
        """
        async with self._blobs.guard(content_hash):
            async with self._session_factory() as session:
                remaining = await SqlDocumentRepository(session).count_by_content_hash(content_hash)
                dropped = await collect_subsets(session, self._blobs, content_hash, page_sets)
            if remaining == 0:
                await self._blobs.delete(blob_ref)
        logger.debug(
            f"Collected {dropped} cached subset(s) of {content_hash[:12]}"
            + ("" if remaining else " and the source blob")
        )
