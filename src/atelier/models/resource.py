"""Resource entity - an uploaded input artifact (e.g. a source image)."""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel

from atelier.core.timezone import utcnow
from atelier.models.generation import InvalidStateTransition


class Resource(SQLModel, table=True):
    """Resource points at an uploaded file in the resources bucket.

    generation_id is a weak reference (no foreign key): it stays null until
    the resource is used by a submission and never changes afterwards.
    """

    __tablename__ = "resources"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    owner_id: str = Field(max_length=64, index=True)
    generation_id: Optional[UUID] = Field(default=None, index=True)
    storage_path: str = Field(max_length=1024)
    mime_type: str = Field(max_length=128)
    created_at: datetime = Field(default_factory=utcnow)

    def attach_to(self, generation_id: UUID) -> None:
        """Associate this resource with a generation.

        Re-attaching to the same generation is a no-op.

        Raises:
            InvalidStateTransition: If already attached to a different generation
        """
        if self.generation_id is not None and self.generation_id != generation_id:
            raise InvalidStateTransition(
                f"Resource {self.id} is already attached to generation {self.generation_id}."
            )
        self.generation_id = generation_id
