"""
Page Allocation Model
=====================

One row per allocated page. The composite primary key on
``(document_id, page_number)`` is the storage-level guarantee that a page
belongs to at most one delivery note.
"""

from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from notesplit.core.database.base import Base

if TYPE_CHECKING:
    from notesplit.core.documents.domain.delivery_note import DeliveryNote


class PageAllocation(Base):
    __tablename__ = "page_allocations"

    document_id: Mapped[str] = mapped_column(
        ForeignKey("documents.id", ondelete="CASCADE"), primary_key=True
    )
    page_number: Mapped[int] = mapped_column(Integer, primary_key=True)
    note_id: Mapped[str] = mapped_column(
        String, ForeignKey("delivery_notes.id", ondelete="CASCADE"), index=True, nullable=False
    )

    note: Mapped["DeliveryNote"] = relationship("DeliveryNote", back_populates="allocations")

    def __repr__(self) -> str:
        return f"<PageAllocation({self.document_id}#{self.page_number} -> {self.note_id})>"
