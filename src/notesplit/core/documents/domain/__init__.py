from notesplit.core.documents.domain.delivery_note import DeliveryNote, NoteOrigin
from notesplit.core.documents.domain.document import Document
from notesplit.core.documents.domain.page_allocation import PageAllocation

__all__ = ["DeliveryNote", "Document", "NoteOrigin", "PageAllocation"]
