"""
Unit of Work
============

Transaction boundary for every write that touches more than one table.
A delivery note row and its page allocations are only ever committed
together through this class.
"""

from collections.abc import Callable
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession


class UnitOfWork(Protocol):
    """Protocol defining the Unit of Work interface."""

    session: AsyncSession

    async def commit(self) -> None:
        """Commit the current transaction."""
        ...

    async def rollback(self) -> None:
        """Rollback the current transaction."""
        ...

    async def __aenter__(self) -> "UnitOfWork":
        """Enter the context manager."""
        ...

    async def __aexit__(self, exc_type, exc, tb) -> None:
        """Exit the context manager."""
        ...


class SqlAlchemyUnitOfWork:
    """
    SQLAlchemy implementation of Unit of Work.

    Commits on a clean exit and rolls back when the block raises.
    """

    def __init__(self, session_factory: Callable[[], AsyncSession]) -> None:
        """
        Initialize the Unit of Work.

        Args:
            session_factory: Factory function that creates AsyncSession instances.
        """
        self._session_factory = session_factory
        self.session: AsyncSession | None = None

    async def __aenter__(self) -> "SqlAlchemyUnitOfWork":
        self.session = self._session_factory()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if not self.session:
            return

        try:
            if exc:
                await self.rollback()
            else:
                await self.commit()
        finally:
            await self.session.close()

    async def commit(self) -> None:
        """Commit the current transaction."""
        if self.session:
            await self.session.commit()

    async def rollback(self) -> None:
        """Rollback the current transaction."""
        if self.session:
            await self.session.rollback()


UnitOfWorkFactory = Callable[[], SqlAlchemyUnitOfWork]
