"""Gallery projection of successful generations.

Read-only: maps success rows into display-ready items and pages through
them newest first.
"""

from datetime import datetime
from typing import Callable, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from atelier.models.generation import Generation, GenerationKind, GenerationStatus


class GalleryItem(BaseModel):
    """Display-ready projection of one successful generation."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: UUID
    type: Literal["image", "video"]
    result_urls: list[str]
    prompt: str
    timestamp: datetime = Field(description="Creation time; pass as `before` to fetch older items")
    resolution: Optional[str] = None
    aspect_ratio: Optional[str] = None


class GalleryPage(BaseModel):
    """One page of gallery items.

    has_more is True when the page is full, meaning older items may exist.
    """

    items: list[GalleryItem]
    has_more: bool


def project(generation: Generation) -> GalleryItem:
    """Map a successful generation to a gallery item.

    Raises:
        ValueError: If the generation is not in success state
    """
    if generation.status != GenerationStatus.SUCCESS:
        raise ValueError(
            f"Only successful generations are shown in the gallery (got {generation.status.value})"
        )
    return GalleryItem(
        id=generation.id,
        type="video" if generation.kind == GenerationKind.VIDEO else "image",
        result_urls=list(generation.result_urls),
        prompt=generation.prompt,
        timestamp=generation.created_at,
        resolution=generation.resolution,
        aspect_ratio=generation.aspect_ratio,
    )


class GalleryProjector:
    """Lists a user's successful generations for display.

    Example:
        projector = GalleryProjector(uow_factory)
        first = await projector.list(user_id, limit=8)
        older = await projector.list(user_id, limit=8, before=first.items[-1].timestamp)
    """

    def __init__(self, uow_factory: Callable):
        self.uow_factory = uow_factory

    async def list(
        self,
        owner_id: str,
        limit: int,
        before: Optional[datetime] = None,
    ) -> GalleryPage:
        """Return up to ``limit`` successful generations created before ``before``."""
        if limit < 1:
            raise ValueError("limit must be positive")

        async with await self.uow_factory() as uow:
            generations = await uow.generations.list_successful(owner_id, limit, before)

        items = [project(generation) for generation in generations]
        return GalleryPage(items=items, has_more=len(items) == limit)
