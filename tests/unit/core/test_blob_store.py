import asyncio
import hashlib

import pytest

from notesplit.core.storage.blob_store import BlobNotFoundError, FilesystemBlobStore


@pytest.fixture
def store(tmp_path) -> FilesystemBlobStore:
    return FilesystemBlobStore(tmp_path / "blobs")


@pytest.mark.asyncio
async def test_put_is_content_addressed(store, tmp_path):
    data = b"%PDF-1.7 example"
    content_hash, ref = await store.put(data)

    assert content_hash == hashlib.sha256(data).hexdigest()
    assert ref == content_hash
    assert (tmp_path / "blobs" / ref[:2] / ref).read_bytes() == data


@pytest.mark.asyncio
async def test_put_is_idempotent(store):
    first = await store.put(b"same bytes")
    second = await store.put(b"same bytes")

    assert first == second
    assert await store.get(first[1]) == b"same bytes"


@pytest.mark.asyncio
async def test_get_missing_raises(store):
    with pytest.raises(BlobNotFoundError):
        await store.get("ab" + "0" * 62)


@pytest.mark.asyncio
async def test_delete_is_idempotent(store):
    _, ref = await store.put(b"to be removed")

    await store.delete(ref)
    await store.delete(ref)

    assert not await store.exists(ref)


@pytest.mark.asyncio
async def test_keyed_put(store):
    key = hashlib.sha256(b"key").hexdigest()
    assert await store.put_keyed(key, b"derived") == key
    assert await store.exists(key)
    assert await store.get(key) == b"derived"


@pytest.mark.asyncio
async def test_rejects_path_like_refs(store):
    with pytest.raises(ValueError):
        await store.get("../etc/passwd")


@pytest.mark.asyncio
async def test_guard_serialises_holders_of_one_hash(store):
    order: list[str] = []

    async def hold(name: str, key: str) -> None:
        async with store.guard(key):
            order.append(f"{name}-in")
            await asyncio.sleep(0.01)
            order.append(f"{name}-out")

    await asyncio.gather(hold("a", "k1"), hold("b", "k1"), hold("c", "k2"))

    assert order.index("a-out") < order.index("b-in")
    assert order.index("c-in") < order.index("a-out")
