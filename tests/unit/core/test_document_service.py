import asyncio

import pytest

from notesplit.core.documents.application.delivery_note_service import NoteDraft, subset_cache_key
from notesplit.shared.exceptions import (
    DocumentInUseError,
    NotFoundError,
    PayloadTooLargeError,
    PdfCorruptError,
    UnsupportedMediaTypeError,
    ValidationError,
)


@pytest.mark.asyncio
async def test_ingest_records_document(services, pdf_factory):
    data = pdf_factory(4)

    document = await services.documents.ingest("../scans/batch 1.pdf", data)

    assert document.page_count == 4
    assert document.original_filename == "batch 1.pdf"
    assert await services.blob_store.get(document.blob_ref) == data
    assert (await services.documents.get(document.id)).content_hash == document.content_hash


@pytest.mark.asyncio
async def test_duplicate_upload_gets_new_row_and_shares_blob(services, pdf_factory):
    data = pdf_factory(2)

    first = await services.documents.ingest("a.pdf", data)
    second = await services.documents.ingest("a.pdf", data)

    assert first.id != second.id
    assert first.blob_ref == second.blob_ref
    assert len(await services.documents.list_documents()) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("data", "error"),
    [
        (b"", ValidationError),
        (b"PK\x03\x04zipfile", UnsupportedMediaTypeError),
        (b"%PDF-1.4 broken", PdfCorruptError),
    ],
)
async def test_ingest_rejects_bad_uploads(services, data, error):
    with pytest.raises(error):
        await services.documents.ingest("bad.pdf", data)

    assert await services.documents.list_documents() == []


@pytest.mark.asyncio
async def test_size_limit(services):
    with pytest.raises(PayloadTooLargeError):
        services.documents.check_upload(b"%PDF-" + b"0" * (20 * 1024 * 1024))


@pytest.mark.asyncio
async def test_allocations_view(services, pdf_factory):
    document = await services.documents.ingest("a.pdf", pdf_factory(5))
    note = await services.notes.create(
        NoteDraft(document_id=document.id, display_name="A", company_name="Acme", page_numbers=[2, 3])
    )

    view = await services.documents.allocations(document.id)

    assert view.allocations == {2: note.id, 3: note.id}
    assert view.unassigned_pages == [1, 4, 5]


@pytest.mark.asyncio
async def test_delete_refuses_while_notes_exist(services, pdf_factory):
    document = await services.documents.ingest("a.pdf", pdf_factory(3))
    await services.notes.create(
        NoteDraft(document_id=document.id, display_name="A", company_name="Acme", page_numbers=[1])
    )

    with pytest.raises(DocumentInUseError):
        await services.documents.delete(document.id)


@pytest.mark.asyncio
async def test_cascade_delete_removes_notes_and_blobs(services, pdf_factory):
    document = await services.documents.ingest("a.pdf", pdf_factory(3))
    note = await services.notes.create(
        NoteDraft(document_id=document.id, display_name="A", company_name="Acme", page_numbers=[1, 2])
    )
    await services.notes.render_pdf(note.id)

    removed = await services.documents.delete(document.id, cascade=True)

    assert removed == [note.id]
    assert not await services.blob_store.exists(document.blob_ref)
    assert not await services.blob_store.exists(subset_cache_key(document.content_hash, [1, 2]))
    with pytest.raises(NotFoundError):
        await services.notes.get(note.id)
    with pytest.raises(NotFoundError):
        await services.documents.get(document.id)


@pytest.mark.asyncio
async def test_shared_blob_survives_deleting_one_copy(services, pdf_factory):
    data = pdf_factory(2)
    first = await services.documents.ingest("a.pdf", data)
    await services.documents.ingest("b.pdf", data)

    await services.documents.delete(first.id)

    assert await services.blob_store.exists(first.blob_ref)


async def document_exists(services, document_id: str) -> bool:
    try:
        await services.documents.get(document_id)
    except NotFoundError:
        return False
    return True


@pytest.mark.asyncio
async def test_upload_racing_a_delete_keeps_its_blob(services, pdf_factory, read_pages):
    data = pdf_factory(3)
    old = await services.documents.ingest("old.pdf", data)

    # Hold collection back until an identical upload is on its way
    async with services.blob_store.guard(old.content_hash):
        deleting = asyncio.create_task(services.documents.delete(old.id))
        async with asyncio.timeout(5):
            while await document_exists(services, old.id):
                await asyncio.sleep(0.01)
        uploading = asyncio.create_task(services.documents.ingest("new.pdf", data))
        await asyncio.sleep(0.05)

    await deleting
    fresh = await uploading

    assert fresh.blob_ref == old.blob_ref
    assert await services.blob_store.exists(fresh.blob_ref)
    note = await services.notes.create(
        NoteDraft(document_id=fresh.id, display_name="A", company_name="Acme", page_numbers=[2])
    )
    _, pdf = await services.notes.render_pdf(note.id)
    assert read_pages(pdf) == ["Page 2"]


@pytest.mark.asyncio
async def test_cascade_delete_keeps_subsets_a_copy_still_uses(services, pdf_factory):
    data = pdf_factory(4)
    first = await services.documents.ingest("a.pdf", data)
    second = await services.documents.ingest("b.pdf", data)
    for document in (first, second):
        note = await services.notes.create(
            NoteDraft(document_id=document.id, display_name="A", company_name="Acme", page_numbers=[1, 2])
        )
        await services.notes.render_pdf(note.id)
    only_first = await services.notes.create(
        NoteDraft(document_id=first.id, display_name="B", company_name="Acme", page_numbers=[3])
    )
    await services.notes.render_pdf(only_first.id)

    await services.documents.delete(first.id, cascade=True)

    assert await services.blob_store.exists(subset_cache_key(first.content_hash, [1, 2]))
    assert not await services.blob_store.exists(subset_cache_key(first.content_hash, [3]))
    assert await services.blob_store.exists(first.blob_ref)
