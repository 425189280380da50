"""Unit of Work pattern.

Provides transaction management with automatic commit/rollback and access to all repositories.
"""

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from atelier.repositories.generation import GenerationRepository
from atelier.repositories.resource import ResourceRepository

logger = structlog.get_logger()


class UnitOfWork:
    """Unit of Work pattern implementation.

    Manages database transactions and provides access to all repositories.
    Use as async context manager for automatic commit/rollback.

    Example:
        async with await uow_factory() as uow:
            generation = await uow.generations.add(Generation(...))
            resources = await uow.resources.get_by_ids(resource_ids)
            await uow.resources.link_to_generation(resources, generation.id)
            # Automatically commits on successful exit
            # Automatically rolls back on exception
    """

    def __init__(self, session: AsyncSession):
        """Initialize UnitOfWork with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

        self.generations = GenerationRepository(session)
        self.resources = ResourceRepository(session)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Exit async context manager with automatic commit/rollback.

        Returns:
            False: Always re-raise exceptions after rollback
        """
        try:
            if exc_type is None:
                await self.session.commit()
                logger.debug("transaction.committed")
            else:
                await self.session.rollback()
                logger.info("transaction.rolled_back", exc_type=exc_type.__name__)
        finally:
            await self.session.close()

        return False


def create_uow_factory(session_factory: async_sessionmaker[AsyncSession]):
    """Create a factory function that produces UnitOfWork instances.

    Args:
        session_factory: SQLAlchemy async session factory

    Returns:
        Callable that creates UnitOfWork instances from new sessions

    Example:
        session_factory = setup_db_session(db_url, pool_size=20)
        uow_factory = create_uow_factory(session_factory)

        async with await uow_factory() as uow:
            await uow.generations.get_by_id(generation_id)
    """

    async def _create_uow():
        """Create a new UnitOfWork instance with a new session."""
        session = session_factory()
        return UnitOfWork(session)

    return _create_uow
