"""Resource repository.

Provides data access methods for uploaded input artifacts.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.models.resource import Resource


class ResourceRepository:
    """Repository for Resource entities."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def add(self, resource: Resource) -> Resource:
        """Persist new resource to database."""
        self.session.add(resource)
        await self.session.flush()
        return resource

    async def get_by_id(self, resource_id: UUID) -> Resource | None:
        result = await self.session.execute(
            select(Resource).where(Resource.id == resource_id)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def get_by_ids(self, resource_ids: list[UUID]) -> list[Resource]:
        """Retrieve resources by id, ordered by upload time.

        Unknown ids are silently absent from the result; callers compare
        lengths when every id must exist.
        """
        if not resource_ids:
            return []
        result = await self.session.execute(
            select(Resource)
            .where(Resource.id.in_(resource_ids))  # type: ignore[attr-defined]
            .order_by(Resource.created_at.asc())  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())

    async def get_by_generation(self, generation_id: UUID) -> list[Resource]:
        """Retrieve the resources linked to a generation (oldest upload first)."""
        result = await self.session.execute(
            select(Resource)
            .where(Resource.generation_id == generation_id)  # type: ignore[arg-type]
            .order_by(Resource.created_at.asc())  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())

    async def link_to_generation(self, resources: list[Resource], generation_id: UUID) -> None:
        """Attach resources to a generation.

        Raises:
            InvalidStateTransition: If any resource already belongs to another generation
        """
        for resource in resources:
            resource.attach_to(generation_id)
            self.session.add(resource)
        await self.session.flush()
