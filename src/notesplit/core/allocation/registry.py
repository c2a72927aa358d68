"""
Allocation Registry
===================

Authority over which pages of a document belong to which delivery note.

Every mutation runs inside ``transaction(document_id)``, which holds the
document's exclusive lock and a single unit of work. A note row and its
allocation rows therefore commit or roll back together. The composite
primary key on ``page_allocations`` backs the lock up across processes.

Only database work may happen while the lock is held: no blob I/O, PDF
rendering or extractor calls.
"""

import asyncio
import logging
import weakref
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from notesplit.core.database.unit_of_work import SqlAlchemyUnitOfWork, UnitOfWorkFactory
from notesplit.core.documents.domain.page_allocation import PageAllocation
from notesplit.shared.exceptions import AllocationConflictError

logger = logging.getLogger(__name__)


class AllocationRegistry:
    """Serialised, transactional page allocation per document."""

    def __init__(self, uow_factory: UnitOfWorkFactory):
        self._uow_factory = uow_factory
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, document_id: str) -> asyncio.Lock:
        lock = self._locks.get(document_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[document_id] = lock
        return lock

    @asynccontextmanager
    async def transaction(self, document_id: str) -> AsyncIterator[SqlAlchemyUnitOfWork]:
        """Hold the document lock for the lifetime of one unit of work."""
        lock = self._lock_for(document_id)
        async with lock:
            async with self._uow_factory() as uow:
                yield uow

    async def allocate(
        self,
        session: AsyncSession,
        document_id: str,
        page_numbers: Sequence[int],
        note_id: str,
    ) -> None:
        """
        Assign every page in ``page_numbers`` to ``note_id``, or none of them.

        Must run inside ``transaction(document_id)``.

        Raises:
            AllocationConflictError: Some pages already belong to another note.
        """
        pages = sorted(set(page_numbers))

        result = await session.execute(
            select(PageAllocation.page_number).where(
                PageAllocation.document_id == document_id,
                PageAllocation.page_number.in_(pages),
            )
        )
        taken = sorted(result.scalars().all())
        if taken:
            logger.info(f"Allocation conflict on {document_id}: pages {taken}")
            raise AllocationConflictError(document_id, taken)

        session.add_all(
            PageAllocation(document_id=document_id, page_number=page, note_id=note_id)
            for page in pages
        )
        try:
            await session.flush()
        except IntegrityError as e:
            # Another process won the race between our check and insert
            logger.warning(f"Allocation race on {document_id}: {e.orig}")
            raise AllocationConflictError(document_id, pages) from e

    async def free(self, session: AsyncSession, note_id: str) -> list[int]:
        """Remove every allocation of ``note_id``. Returns the freed pages, sorted."""
        result = await session.execute(
            select(PageAllocation.page_number).where(PageAllocation.note_id == note_id)
        )
        freed = sorted(result.scalars().all())
        if freed:
            await session.execute(delete(PageAllocation).where(PageAllocation.note_id == note_id))
            logger.debug(f"Freed pages {freed} of note {note_id}")
        return freed

    async def allocated_pages(self, session: AsyncSession, document_id: str) -> dict[int, str]:
        """Current ``page -> note_id`` map for a document."""
        result = await session.execute(
            select(PageAllocation.page_number, PageAllocation.note_id)
            .where(PageAllocation.document_id == document_id)
            .order_by(PageAllocation.page_number)
        )
        return {page: note_id for page, note_id in result.all()}
