"""Repository layer.

Provides data access abstractions for all domain entities.
No base classes - each repository is self-contained.
"""

from atelier.repositories.generation import GenerationRepository
from atelier.repositories.resource import ResourceRepository

__all__ = [
    "GenerationRepository",
    "ResourceRepository",
]
