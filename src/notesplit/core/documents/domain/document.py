"""
Document Model
==============

Database model for uploaded source PDFs.
"""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import uuid4

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from notesplit.core.database.base import Base, utcnow

if TYPE_CHECKING:
    from notesplit.core.documents.domain.delivery_note import DeliveryNote


def new_document_id() -> str:
    return f"doc_{uuid4().hex}"


class Document(Base):
    """
    An uploaded source PDF.

    ``page_count`` is read from the PDF at ingest time and is the authority
    for page-number bounds of every note on this document.
    """

    __tablename__ = "documents"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_document_id)
    original_filename: Mapped[str] = mapped_column(String(255), nullable=False)
    content_hash: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    page_count: Mapped[int] = mapped_column(Integer, nullable=False)
    blob_ref: Mapped[str] = mapped_column(String, nullable=False)
    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    notes: Mapped[list["DeliveryNote"]] = relationship(
        "DeliveryNote",
        back_populates="document",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Document(id={self.id}, filename={self.original_filename}, pages={self.page_count})>"
