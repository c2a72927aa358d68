import pytest

from notesplit.core.documents.application.delivery_note_service import NoteDraft, subset_cache_key
from notesplit.core.documents.domain import NoteOrigin
from notesplit.shared.exceptions import (
    AllocationConflictError,
    NotFoundError,
    ValidationError,
)


@pytest.fixture
async def document(services, pdf_factory):
    return await services.documents.ingest("source.pdf", pdf_factory(12))


def draft(document_id: str, pages: list[int], **fields) -> NoteDraft:
    values = dict(display_name="A", company_name="Acme")
    values.update(fields)
    return NoteDraft(document_id=document_id, page_numbers=pages, **values)


@pytest.mark.asyncio
async def test_create_sorts_pages_and_sanitises_text(services, document):
    note = await services.notes.create(
        draft(document.id, [3, 1, 2], company_name="  <Acme>  ", delivery_date="")
    )

    stored = await services.notes.get(note.id)
    assert stored.page_numbers == [1, 2, 3]
    assert stored.company_name == "Acme"
    assert stored.delivery_date is None
    assert stored.origin == NoteOrigin.MANUAL


@pytest.mark.asyncio
async def test_conflict_lists_taken_pages(services, document):
    await services.notes.create(draft(document.id, [1, 2, 3]))

    with pytest.raises(AllocationConflictError) as exc_info:
        await services.notes.create(draft(document.id, [2, 4]))

    assert exc_info.value.pages == [2]
    assert len(await services.notes.list_notes(document.id)) == 1


@pytest.mark.asyncio
async def test_create_many_is_all_or_nothing(services, document):
    with pytest.raises(AllocationConflictError):
        await services.notes.create_many(
            document.id, [draft(document.id, [1, 2]), draft(document.id, [2, 3])]
        )

    assert await services.notes.list_notes(document.id) == []


@pytest.mark.asyncio
@pytest.mark.parametrize("pages", [[], [1, 1], [0], [13]], ids=["empty", "duplicate", "zero", "past-end"])
async def test_invalid_page_selections(services, document, pages):
    with pytest.raises(ValidationError):
        await services.notes.create(draft(document.id, pages))


@pytest.mark.asyncio
async def test_company_name_needs_two_characters(services, document):
    with pytest.raises(ValidationError):
        await services.notes.create(draft(document.id, [1], company_name=" A "))


@pytest.mark.asyncio
async def test_unknown_document(services):
    with pytest.raises(NotFoundError):
        await services.notes.create(draft("doc_missing", [1]))


@pytest.mark.asyncio
async def test_delete_frees_pages_for_reuse(services, document):
    note = await services.notes.create(draft(document.id, [3, 1, 2]))

    assert await services.notes.delete(note.id) == [1, 2, 3]
    with pytest.raises(NotFoundError):
        await services.notes.delete(note.id)

    again = await services.notes.create(draft(document.id, [1, 2, 3]))
    assert again.page_numbers == [1, 2, 3]


@pytest.mark.asyncio
async def test_update_edits_metadata_only(services, document):
    note = await services.notes.create(draft(document.id, [4], shipping_id="S-1"))

    updated = await services.notes.update(
        note.id, {"delivery_date": "2026-10-01", "shipping_id": None, "customer_number": "C-7"}
    )

    assert updated.delivery_date == "2026-10-01"
    assert updated.display_name == "A"
    assert updated.shipping_id is None
    assert updated.customer_number == "C-7"
    assert updated.page_numbers == [4]

    for fixed in ({"display_name": "Renamed"}, {"company_name": "Other"}, {"page_numbers": [5]}):
        with pytest.raises(ValidationError):
            await services.notes.update(note.id, fixed)
    assert (await services.notes.get(note.id)).display_name == "A"


@pytest.mark.asyncio
async def test_render_pdf_builds_once_and_caches(services, document, read_pages):
    note = await services.notes.create(draft(document.id, [5, 7]))

    _, data = await services.notes.render_pdf(note.id)
    key = subset_cache_key(document.content_hash, [7, 5])

    assert read_pages(data) == ["Page 5", "Page 7"]
    assert await services.blob_store.exists(key)
    _, cached = await services.notes.render_pdf(note.id)
    assert cached == data


@pytest.mark.asyncio
async def test_delete_drops_the_cached_pdf(services, document):
    note = await services.notes.create(draft(document.id, [2, 3]))
    await services.notes.render_pdf(note.id)
    key = subset_cache_key(document.content_hash, [2, 3])
    assert await services.blob_store.exists(key)

    await services.notes.delete(note.id)

    assert not await services.blob_store.exists(key)


@pytest.mark.asyncio
async def test_cached_pdf_survives_while_a_copy_renders_the_same_pages(services, document, read_pages):
    copy = await services.documents.ingest("copy.pdf", await services.blob_store.get(document.blob_ref))
    original = await services.notes.create(draft(document.id, [2, 3]))
    duplicate = await services.notes.create(draft(copy.id, [2, 3]))
    await services.notes.render_pdf(original.id)

    await services.notes.delete(original.id)

    assert await services.blob_store.exists(subset_cache_key(document.content_hash, [2, 3]))
    _, data = await services.notes.render_pdf(duplicate.id)
    assert read_pages(data) == ["Page 2", "Page 3"]


@pytest.mark.asyncio
async def test_render_with_missing_source_is_not_found(services, document):
    note = await services.notes.create(draft(document.id, [1]))
    await services.blob_store.delete(document.blob_ref)

    with pytest.raises(NotFoundError):
        await services.notes.render_pdf(note.id)
