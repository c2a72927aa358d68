"""
PDF Engine
==========

The only component that parses PDF bytes. Built on PyMuPDF (``fitz``).

All methods are synchronous and CPU-bound; async callers run them through
``asyncio.to_thread``. A handle serialises access to its underlying
``fitz.Document`` because PyMuPDF documents are not thread-safe.
"""

import logging
import threading
from collections.abc import Sequence

import fitz

from notesplit.shared.exceptions import EmptySelectionError, PdfCorruptError, PdfEncryptedError, ValidationError

logger = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF-"


def looks_like_pdf(data: bytes) -> bool:
    """Sniff the first five bytes for the PDF header."""
    return data[: len(PDF_MAGIC)] == PDF_MAGIC


class DocumentHandle:
    """An opened source PDF. Close it, or use it as a context manager."""

    def __init__(self, doc: fitz.Document):
        self._doc = doc
        self._lock = threading.Lock()

    @property
    def page_count(self) -> int:
        return self._doc.page_count

    def close(self) -> None:
        with self._lock:
            if not self._doc.is_closed:
                self._doc.close()

    def __enter__(self) -> "DocumentHandle":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class PdfEngine:
    """Stateless PDF operations over ``DocumentHandle`` objects."""

    def open(self, data: bytes) -> DocumentHandle:
        """
        Open PDF bytes.

        Raises:
            PdfCorruptError: The bytes are not a readable PDF or have no pages.
            PdfEncryptedError: The PDF needs a password to be read.
        """
        if not looks_like_pdf(data):
            raise PdfCorruptError()

        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except (fitz.FileDataError, RuntimeError, ValueError) as e:
            logger.info(f"Rejected unreadable PDF: {e}")
            raise PdfCorruptError() from e

        # Owner-password-only files open with an empty user password
        if doc.needs_pass and not doc.authenticate(""):
            doc.close()
            raise PdfEncryptedError()

        if doc.page_count < 1:
            doc.close()
            raise PdfCorruptError()

        return DocumentHandle(doc)

    def page_count(self, handle: DocumentHandle) -> int:
        return handle.page_count

    def _page(self, handle: DocumentHandle, page_number: int) -> fitz.Page:
        if not 1 <= page_number <= handle.page_count:
            raise ValidationError(f"Page {page_number} is outside 1..{handle.page_count}")
        return handle._doc.load_page(page_number - 1)

    def render_page(self, handle: DocumentHandle, page_number: int, dpi: int = 150) -> bytes:
        """Rasterise a 1-based page to PNG bytes."""
        with handle._lock:
            try:
                pixmap = self._page(handle, page_number).get_pixmap(dpi=dpi)
                return pixmap.tobytes("png")
            except RuntimeError as e:
                raise PdfCorruptError(f"Page {page_number} could not be rendered") from e

    def extract_text(self, handle: DocumentHandle, page_number: int) -> str:
        """Plain text of a 1-based page."""
        with handle._lock:
            try:
                return self._page(handle, page_number).get_text("text")
            except RuntimeError as e:
                raise PdfCorruptError(f"Page {page_number} could not be read") from e

    def build_subset_pdf(self, handle: DocumentHandle, page_numbers: Sequence[int]) -> bytes:
        """
        Build a new PDF holding exactly ``page_numbers`` in the given order.

        Pages are copied verbatim, not re-laid out. The input must be sorted
        ascending, unique and within the source page range.
        """
        if not page_numbers:
            raise EmptySelectionError()

        pages = list(page_numbers)
        if pages != sorted(set(pages)):
            raise ValidationError("Page numbers must be unique and sorted ascending")
        if pages[0] < 1 or pages[-1] > handle.page_count:
            raise ValidationError(f"Page numbers must be between 1 and {handle.page_count}")

        with handle._lock:
            subset = fitz.open()
            try:
                for page_number in pages:
                    subset.insert_pdf(
                        handle._doc,
                        from_page=page_number - 1,
                        to_page=page_number - 1,
                    )
                return subset.tobytes(garbage=1, deflate=True)
            finally:
                subset.close()
