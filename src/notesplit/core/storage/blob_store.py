"""
Blob Store
==========

Content-addressed byte storage on the local filesystem.

Blobs live at ``<root>/<key[:2]>/<key>``. For uploads the key is the
SHA-256 of the bytes, so storing identical content twice is a no-op.
Derived artefacts use ``put_keyed`` with a key computed by the caller.

Callers that decide a blob is unreferenced and delete it must hold
``guard(content_hash)`` across the check and the delete, and so must
callers that store a blob and record a reference to it.
"""

import asyncio
import hashlib
import logging
import os
import tempfile
import weakref
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class BlobNotFoundError(KeyError):
    """Raised when a ref does not resolve to a stored blob."""


class BlobStorePort(Protocol):
    """Port for blob storage operations."""

    async def put(self, data: bytes) -> tuple[str, str]:
        """Store bytes, returning ``(content_hash, ref)``."""
        ...

    async def put_keyed(self, key: str, data: bytes) -> str:
        """Store bytes under a caller-computed key, returning the ref."""
        ...

    async def get(self, ref: str) -> bytes:
        """Read a blob."""
        ...

    async def exists(self, ref: str) -> bool:
        """Whether a blob is stored under ``ref``."""
        ...

    async def delete(self, ref: str) -> None:
        """Remove a blob. Missing refs are ignored."""
        ...

    def guard(self, content_hash: str) -> AbstractAsyncContextManager[None]:
        """Async context manager serialising writers and collectors of one source."""
        ...


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class FilesystemBlobStore:
    """Filesystem implementation of ``BlobStorePort``."""

    def __init__(self, root: Path | str):
        self.root = Path(root)
        self._guards: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _path_for(self, ref: str) -> Path:
        if len(ref) < 3 or not all(c.isalnum() for c in ref):
            raise ValueError(f"Invalid blob ref: {ref!r}")
        return self.root / ref[:2] / ref

    def _write(self, path: Path, data: bytes) -> None:
        if path.exists():
            return
        path.parent.mkdir(parents=True, exist_ok=True)
        # Write-then-rename so readers never observe a partial blob
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def _read(self, path: Path) -> bytes:
        try:
            return path.read_bytes()
        except FileNotFoundError as e:
            raise BlobNotFoundError(path.name) from e

    async def put(self, data: bytes) -> tuple[str, str]:
        content_hash = sha256_hex(data)
        await asyncio.to_thread(self._write, self._path_for(content_hash), data)
        logger.debug(f"Stored blob {content_hash} ({len(data)} bytes)")
        return content_hash, content_hash

    async def put_keyed(self, key: str, data: bytes) -> str:
        await asyncio.to_thread(self._write, self._path_for(key), data)
        return key

    async def get(self, ref: str) -> bytes:
        return await asyncio.to_thread(self._read, self._path_for(ref))

    async def exists(self, ref: str) -> bool:
        return await asyncio.to_thread(self._path_for(ref).exists)

    async def delete(self, ref: str) -> None:
        path = self._path_for(ref)
        await asyncio.to_thread(path.unlink, missing_ok=True)
        logger.debug(f"Deleted blob {ref}")

    @asynccontextmanager
    async def guard(self, content_hash: str) -> AsyncIterator[None]:
        lock = self._guards.get(content_hash)
        if lock is None:
            lock = asyncio.Lock()
            self._guards[content_hash] = lock
        async with lock:
            yield
