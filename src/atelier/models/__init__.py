"""SQLModel database entities.

All models are imported here to ensure they're registered with SQLModel metadata
for Alembic autogenerate support.
"""

from atelier.models.generation import (
    Generation,
    GenerationKind,
    GenerationStatus,
    InvalidStateTransition,
    ModelTier,
)
from atelier.models.resource import Resource

__all__ = [
    "Generation",
    "GenerationKind",
    "GenerationStatus",
    "ModelTier",
    "InvalidStateTransition",
    "Resource",
]
