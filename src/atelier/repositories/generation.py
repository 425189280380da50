"""Generation repository.

Provides data access methods for Generation entities, including the
claim query the worker uses as its durable queue (FOR UPDATE SKIP LOCKED).
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.models.generation import Generation, GenerationStatus


class GenerationRepository:
    """Repository for Generation entities.

    The worker coordination query uses FOR UPDATE SKIP LOCKED so concurrent
    workers receive non-overlapping sets of pending jobs.
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def add(self, generation: Generation) -> Generation:
        """Persist new generation to database.

        Args:
            generation: Generation entity to persist

        Returns:
            Persisted generation with generated ID
        """
        self.session.add(generation)
        await self.session.flush()
        return generation

    async def get_by_id(self, generation_id: UUID) -> Generation | None:
        """Retrieve generation by UUID.

        Args:
            generation_id: Generation's unique identifier

        Returns:
            Generation if found, None otherwise
        """
        result = await self.session.execute(
            select(Generation).where(Generation.id == generation_id)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def get_for_update(self, generation_id: UUID) -> Generation | None:
        """Lock a generation row and reload it from the database.

        Used right before a terminal write so the caller sees any status
        change committed by another session (the reaper) while it worked.
        """
        result = await self.session.execute(
            select(Generation)
            .where(Generation.id == generation_id)  # type: ignore[arg-type]
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_for_owner(self, generation_id: UUID, owner_id: str) -> Generation | None:
        """Point read scoped to the requesting user."""
        result = await self.session.execute(
            select(Generation).where(
                Generation.id == generation_id,  # type: ignore[arg-type]
                Generation.owner_id == owner_id,  # type: ignore[arg-type]
            )
        )
        return result.scalar_one_or_none()

    async def claim_pending(self, limit: int = 10) -> list[Generation]:
        """Lock pending generations and mark them processing.

        Query explanation:
        - WHERE status = 'pending': Jobs nobody has started
        - ORDER BY created_at ASC: Oldest first (FIFO)
        - LIMIT: Batch size for worker
        - FOR UPDATE SKIP LOCKED: Lock rows, skip those another worker holds

        The status change is flushed in the same transaction, so once the
        caller commits no other worker can claim these rows again.

        Args:
            limit: Maximum number of generations to claim (default: 10)

        Returns:
            Generations now in processing state, owned by this worker
        """
        result = await self.session.execute(
            select(Generation)
            .where(Generation.status == GenerationStatus.PENDING)  # type: ignore[arg-type]
            .order_by(Generation.created_at.asc())  # type: ignore[attr-defined]
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        generations = list(result.scalars().all())
        for generation in generations:
            generation.mark_processing()
            self.session.add(generation)
        await self.session.flush()
        return generations

    async def list_successful(
        self,
        owner_id: str,
        limit: int,
        before: datetime | None = None,
    ) -> list[Generation]:
        """Retrieve successful generations newest first.

        Args:
            owner_id: Owner whose gallery is listed
            limit: Page size
            before: Only rows created strictly earlier than this timestamp

        Returns:
            Up to ``limit`` generations ordered by created_at DESC, id DESC
        """
        stmt = select(Generation).where(
            Generation.owner_id == owner_id,  # type: ignore[arg-type]
            Generation.status == GenerationStatus.SUCCESS,  # type: ignore[arg-type]
        )
        if before is not None:
            stmt = stmt.where(Generation.created_at < before)  # type: ignore[arg-type]
        stmt = stmt.order_by(
            Generation.created_at.desc(),  # type: ignore[attr-defined]
            Generation.id.desc(),  # type: ignore[attr-defined]
        ).limit(limit)

        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_stale(self, updated_before: datetime, limit: int | None = None) -> list[Generation]:
        """Retrieve non-terminal generations that have not moved since ``updated_before``.

        Rows are locked with SKIP LOCKED. A worker takes the same lock through
        ``get_for_update`` before its terminal write, so whichever side commits
        second sees the first side's status and backs off.
        """
        stmt = (
            select(Generation)
            .where(
                or_(
                    Generation.status == GenerationStatus.PENDING,  # type: ignore[arg-type]
                    Generation.status == GenerationStatus.PROCESSING,  # type: ignore[arg-type]
                ),
                Generation.updated_at < updated_before,  # type: ignore[arg-type]
            )
            .order_by(Generation.updated_at.asc())  # type: ignore[attr-defined]
            .with_for_update(skip_locked=True)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def save(self, generation: Generation) -> Generation:
        """Flush pending changes on a generation and refresh it."""
        self.session.add(generation)
        await self.session.flush()
        await self.session.refresh(generation)
        return generation
