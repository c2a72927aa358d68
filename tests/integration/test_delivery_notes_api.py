import pytest

pytestmark = [pytest.mark.integration, pytest.mark.asyncio]


@pytest.fixture
async def document_id(client, pdf_factory) -> str:
    response = await client.post(
        "/api/documents/upload", files={"file": ("scan.pdf", pdf_factory(12), "application/pdf")}
    )
    assert response.status_code == 200
    return response.json()["id"]


async def create_note(client, document_id: str, pages: list[int], **fields):
    body = {"documentId": document_id, "displayName": "A", "companyName": "Acme", "pageNumbers": pages}
    body.update(fields)
    return await client.post("/api/delivery-notes", json=body)


async def test_create_sorts_pages_and_downloads_them(client, document_id, read_pages):
    created = await create_note(client, document_id, [3, 1, 2])

    assert created.status_code == 201
    assert created.json()["status"] == "created"
    note_id = created.json()["id"]

    note = (await client.get(f"/api/delivery-notes/{note_id}")).json()
    assert note["pageNumbers"] == [1, 2, 3]
    assert note["displayName"] == "A"
    assert note["origin"] == "manual"

    download = await client.get(f"/api/delivery-notes/{note_id}/download")
    assert download.status_code == 200
    assert download.headers["content-type"] == "application/pdf"
    assert download.headers["content-disposition"].startswith('attachment; filename="A.pdf"')
    assert read_pages(download.content) == ["Page 1", "Page 2", "Page 3"]


async def test_overlapping_pages_conflict(client, document_id):
    await create_note(client, document_id, [1, 2, 3])

    response = await create_note(client, document_id, [2, 4])

    assert response.status_code == 409
    assert response.json()["pages"] == [2]

    allocations = (await client.get(f"/api/documents/{document_id}/allocations")).json()
    assert 4 in allocations["unassignedPages"]


async def test_delete_frees_pages_for_reuse(client, document_id):
    note_id = (await create_note(client, document_id, [1, 2, 3])).json()["id"]

    deleted = await client.delete(f"/api/delivery-notes/{note_id}")
    assert deleted.status_code == 200
    assert deleted.json() == {"success": True, "freedPages": [1, 2, 3]}

    assert (await create_note(client, document_id, [1, 2, 3])).status_code == 201
    assert (await client.delete(f"/api/delivery-notes/{note_id}")).status_code == 404


@pytest.mark.parametrize(
    "pages",
    [[0], [13], [2, 2]],
    ids=["zero", "past-end", "duplicate"],
)
async def test_invalid_page_selections(client, document_id, pages):
    response = await create_note(client, document_id, pages)

    assert response.status_code == 400


async def test_empty_selection_is_a_validation_error(client, document_id):
    response = await create_note(client, document_id, [])

    assert response.status_code == 400
    assert response.json()["detail"] == "No pages selected"
    assert response.json()["code"] == "validation_error"


async def test_create_for_unknown_document(client):
    response = await create_note(client, "missing", [1])

    assert response.status_code == 404


async def test_snake_case_input_is_accepted(client, document_id):
    response = await client.post(
        "/api/delivery-notes",
        json={
            "document_id": document_id,
            "display_name": "FS 100",
            "company_name": "Nordic Parts",
            "page_numbers": [5],
            "delivery_note_number": "100",
        },
    )

    assert response.status_code == 201
    note = (await client.get(f"/api/delivery-notes/{response.json()['id']}")).json()
    assert note["deliveryNoteNumber"] == "100"
    assert note["companyName"] == "Nordic Parts"


async def test_list_filters_by_document(client, document_id, pdf_factory):
    other = await client.post(
        "/api/documents/upload", files={"file": ("other.pdf", pdf_factory(2, "Other"), "application/pdf")}
    )
    other_id = other.json()["id"]
    await create_note(client, document_id, [1])
    await create_note(client, other_id, [1])

    assert len((await client.get("/api/delivery-notes")).json()) == 2
    camel = (await client.get("/api/delivery-notes", params={"documentId": other_id})).json()
    snake = (await client.get("/api/delivery-notes", params={"document_id": other_id})).json()
    assert camel == snake
    assert [note["documentId"] for note in camel] == [other_id]


async def test_patch_updates_optional_metadata(client, document_id):
    note_id = (await create_note(client, document_id, [1, 2], shippingId="S-1")).json()["id"]

    response = await client.patch(
        f"/api/delivery-notes/{note_id}", json={"deliveryNoteNumber": "FS-9", "shippingId": None}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["deliveryNoteNumber"] == "FS-9"
    assert body.get("shippingId") is None
    assert body["displayName"] == "A"
    assert body["pageNumbers"] == [1, 2]


@pytest.mark.parametrize(
    "change",
    [{"pageNumbers": [3]}, {"displayName": "Renamed"}, {"companyName": "Other"}, {"documentId": "x"}],
    ids=["pages", "display-name", "company", "document"],
)
async def test_patch_rejects_fixed_fields(client, document_id, change):
    note_id = (await create_note(client, document_id, [1, 2])).json()["id"]

    response = await client.patch(f"/api/delivery-notes/{note_id}", json=change)

    assert response.status_code == 400
    note = (await client.get(f"/api/delivery-notes/{note_id}")).json()
    assert (note["displayName"], note["companyName"], note["pageNumbers"]) == ("A", "Acme", [1, 2])


async def test_preview_is_inline_with_sanitised_name(client, document_id):
    note_id = (await create_note(client, document_id, [4], displayName="Følgeseddel 7")).json()["id"]

    response = await client.get(f"/api/delivery-notes/{note_id}/preview")

    assert response.status_code == 200
    disposition = response.headers["content-disposition"]
    assert disposition.startswith("inline;")
    assert 'filename="F_lgeseddel 7.pdf"' in disposition
