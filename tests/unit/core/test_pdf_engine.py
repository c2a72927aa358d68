import fitz
import pytest

from notesplit.core.pdf.engine import PdfEngine, looks_like_pdf
from notesplit.shared.exceptions import (
    EmptySelectionError,
    PdfCorruptError,
    PdfEncryptedError,
    ValidationError,
)


@pytest.fixture
def engine() -> PdfEngine:
    return PdfEngine()


def test_magic_sniffing():
    assert looks_like_pdf(b"%PDF-1.7\n...")
    assert not looks_like_pdf(b"PK\x03\x04rest")
    assert not looks_like_pdf(b"")


def test_open_reports_page_count(engine, pdf_factory):
    with engine.open(pdf_factory(12)) as handle:
        assert engine.page_count(handle) == 12


def test_open_rejects_garbage(engine):
    with pytest.raises(PdfCorruptError):
        engine.open(b"%PDF-1.4\nthis is not really a pdf")


def test_open_rejects_non_pdf_bytes(engine):
    with pytest.raises(PdfCorruptError):
        engine.open(b"PK\x03\x04" + b"\x00" * 64)


def test_open_rejects_encrypted(engine):
    doc = fitz.open()
    doc.new_page().insert_text((72, 72), "secret")
    data = doc.tobytes(encryption=fitz.PDF_ENCRYPT_AES_256, user_pw="user", owner_pw="owner")
    doc.close()

    with pytest.raises(PdfEncryptedError):
        engine.open(data)


def test_subset_keeps_requested_pages_in_order(engine, pdf_factory, read_pages):
    with engine.open(pdf_factory(6)) as handle:
        data = engine.build_subset_pdf(handle, [2, 4, 5])

    assert read_pages(data) == ["Page 2", "Page 4", "Page 5"]


def test_subset_rejects_empty_selection(engine, pdf_factory):
    with engine.open(pdf_factory(3)) as handle, pytest.raises(EmptySelectionError):
        engine.build_subset_pdf(handle, [])


@pytest.mark.parametrize("pages", [[3, 1], [1, 1], [0, 1], [2, 4]])
def test_subset_rejects_unsorted_duplicate_or_out_of_range(engine, pdf_factory, pages):
    with engine.open(pdf_factory(3)) as handle, pytest.raises(ValidationError):
        engine.build_subset_pdf(handle, pages)


def test_render_page_returns_png(engine, pdf_factory):
    with engine.open(pdf_factory(2)) as handle:
        png = engine.render_page(handle, 2, dpi=50)

    assert png.startswith(b"\x89PNG")


def test_extract_text(engine, pdf_factory):
    with engine.open(pdf_factory(3)) as handle:
        assert engine.extract_text(handle, 3).strip() == "Page 3"
