"""
Delivery Note Model
===================

A logical document cut out of a subset of a source PDF's pages.
"""

from enum import Enum
from typing import TYPE_CHECKING
from uuid import uuid4

from sqlalchemy import JSON, ForeignKey, String
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from notesplit.core.database.base import Base, TimestampMixin

if TYPE_CHECKING:
    from notesplit.core.documents.domain.document import Document
    from notesplit.core.documents.domain.page_allocation import PageAllocation


class NoteOrigin(str, Enum):
    """Who proposed the note."""

    MANUAL = "manual"
    AI = "ai"


def new_note_id() -> str:
    return f"note_{uuid4().hex}"


class DeliveryNote(Base, TimestampMixin):
    """
    A delivery note and its extracted metadata.

    ``page_numbers`` is stored sorted ascending. It never changes after the
    note is created; the ``page_allocations`` rows mirror it for lookups.
    """

    __tablename__ = "delivery_notes"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_note_id)
    document_id: Mapped[str] = mapped_column(
        ForeignKey("documents.id", ondelete="CASCADE"), index=True, nullable=False
    )

    display_name: Mapped[str] = mapped_column(String(200), nullable=False)
    company_name: Mapped[str] = mapped_column(String(200), nullable=False)

    # Extracted fields, kept exactly as read
    delivery_date: Mapped[str | None] = mapped_column(String(200), nullable=True)
    delivery_note_number: Mapped[str | None] = mapped_column(String(200), nullable=True)
    shipping_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    customer_number: Mapped[str | None] = mapped_column(String(200), nullable=True)

    page_numbers: Mapped[list[int]] = mapped_column(JSON, nullable=False)
    origin: Mapped[NoteOrigin] = mapped_column(
        SQLEnum(
            NoteOrigin,
            native_enum=False,
            length=16,
            values_callable=lambda members: [m.value for m in members],
        ),
        default=NoteOrigin.MANUAL,
        nullable=False,
    )

    document: Mapped["Document"] = relationship("Document", back_populates="notes")
    allocations: Mapped[list["PageAllocation"]] = relationship(
        "PageAllocation",
        back_populates="note",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<DeliveryNote(id={self.id}, document={self.document_id}, pages={self.page_numbers})>"
