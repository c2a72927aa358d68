from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from notesplit.core.documents.domain.delivery_note import DeliveryNote
from notesplit.core.documents.domain.document import Document


class SqlDocumentRepository:
    """
    SQLAlchemy repository for source documents.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, document_id: str) -> Document | None:
        """Retrieve a document by ID."""
        return await self._session.get(Document, document_id)

    async def save(self, document: Document) -> Document:
        """Add a document to the session and flush it."""
        self._session.add(document)
        await self._session.flush()
        return document

    async def delete(self, document: Document) -> None:
        await self._session.delete(document)
        await self._session.flush()

    async def list_documents(self, limit: int = 100, offset: int = 0) -> list[Document]:
        """List documents, newest first."""
        result = await self._session.execute(
            select(Document)
            .order_by(Document.uploaded_at.desc(), Document.id)
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    async def count_by_content_hash(self, content_hash: str) -> int:
        """How many documents share a blob."""
        result = await self._session.execute(
            select(func.count()).select_from(Document).where(Document.content_hash == content_hash)
        )
        return int(result.scalar_one())


class SqlDeliveryNoteRepository:
    """
    SQLAlchemy repository for delivery notes.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, note_id: str) -> DeliveryNote | None:
        return await self._session.get(DeliveryNote, note_id)

    async def add(self, note: DeliveryNote) -> DeliveryNote:
        self._session.add(note)
        await self._session.flush()
        return note

    async def delete(self, note: DeliveryNote) -> None:
        await self._session.delete(note)
        await self._session.flush()

    async def list_notes(self, document_id: str | None = None) -> list[DeliveryNote]:
        """List notes, optionally for one document, oldest first."""
        stmt = select(DeliveryNote)
        if document_id:
            stmt = stmt.where(DeliveryNote.document_id == document_id)
        stmt = stmt.order_by(DeliveryNote.created_at, DeliveryNote.id)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def page_sets_for_content(self, content_hash: str) -> list[list[int]]:
        """Page lists of every note cut from any document with this content hash."""
        result = await self._session.execute(
            select(DeliveryNote.page_numbers)
            .join(Document, Document.id == DeliveryNote.document_id)
            .where(Document.content_hash == content_hash)
        )
        return [list(pages) for pages in result.scalars().all()]
