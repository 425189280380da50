"""Generation entity - one requested unit of AI content with lifecycle status tracking."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, Text
from sqlmodel import Field, SQLModel

from atelier.core.timezone import utcnow


class GenerationKind(str, Enum):
    """What the job produces and from which inputs."""

    EDIT = "edit"
    GENERATE = "generate"
    VIDEO = "video"


class GenerationStatus(str, Enum):
    """Generation lifecycle status."""

    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (GenerationStatus.SUCCESS, GenerationStatus.ERROR)

    @property
    def rank(self) -> int:
        """Position along pending < processing < {success, error}."""
        return _STATUS_RANK[self]


_STATUS_RANK = {
    GenerationStatus.PENDING: 0,
    GenerationStatus.PROCESSING: 1,
    GenerationStatus.SUCCESS: 2,
    GenerationStatus.ERROR: 2,
}


class ModelTier(str, Enum):
    BASIC = "Basic"
    PRO = "Pro"


class InvalidStateTransition(Exception):
    """Raised when attempting an invalid generation (or resource) state transition."""

    pass


class Generation(SQLModel, table=True):
    """Generation tracks a submitted job from pending to a terminal state.

    Invariants held by the transition methods:
    - result_urls is non-empty only in success
    - error_message is set only in error
    - completed_at is set only in success/error
    """

    __tablename__ = "generations"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    owner_id: str = Field(max_length=64, index=True)
    kind: GenerationKind
    status: GenerationStatus = Field(default=GenerationStatus.PENDING, index=True)
    prompt: str = Field(sa_column=Column(Text, nullable=False))
    resolution: str = Field(max_length=16)
    aspect_ratio: str = Field(max_length=8)
    model_tier: ModelTier = Field(default=ModelTier.BASIC)
    variation_count: int = Field(default=1, ge=1)
    result_urls: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    error_message: Optional[str] = Field(default=None, max_length=2000)
    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = Field(default=None)

    def mark_processing(self) -> None:
        """Transition from pending to processing.

        Raises:
            InvalidStateTransition: If current status is not pending
        """
        if self.status != GenerationStatus.PENDING:
            raise InvalidStateTransition(
                f"Cannot mark processing from {self.status.value}. "
                "Generation must be in pending state."
            )
        self.status = GenerationStatus.PROCESSING
        self.updated_at = utcnow()

    def mark_success(self, result_urls: list[str]) -> None:
        """Transition from processing to success.

        Args:
            result_urls: Public URLs of the uploaded artifacts, in slot order

        Raises:
            InvalidStateTransition: If current status is not processing
            ValueError: If result_urls is empty
        """
        if self.status != GenerationStatus.PROCESSING:
            raise InvalidStateTransition(
                f"Cannot mark success from {self.status.value}. "
                "Generation must be in processing state."
            )
        if not result_urls:
            raise ValueError("result_urls is required")
        now = utcnow()
        self.result_urls = list(result_urls)
        self.error_message = None
        self.status = GenerationStatus.SUCCESS
        self.updated_at = now
        self.completed_at = now

    def mark_error(self, message: str) -> None:
        """Transition from any non-terminal state to error.

        Args:
            message: Human-readable failure reason shown to the user

        Raises:
            InvalidStateTransition: If current status is already terminal
        """
        if self.status.is_terminal:
            raise InvalidStateTransition(
                f"Cannot mark error from terminal state {self.status.value}."
            )
        now = utcnow()
        self.error_message = (message or "Generation failed")[:2000]
        self.result_urls = []
        self.status = GenerationStatus.ERROR
        self.updated_at = now
        self.completed_at = now
