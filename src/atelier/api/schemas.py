"""Request/response models shared by the HTTP routes and the Python client."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from atelier.models.generation import GenerationKind, GenerationStatus, ModelTier


class ImageGenerationRequest(BaseModel):
    """Image job submission. Non-empty resource_ids makes it an edit job."""

    model_config = ConfigDict(protected_namespaces=())

    prompt: str = Field(..., description="Text prompt (non-empty after trimming)")
    model_tier: Optional[ModelTier] = Field(
        default=None, description="Basic or Pro; defaults from resolution (1K → Basic)"
    )
    resolution: str = Field(default="1K", description="1K, 2K or 4K")
    aspect_ratio: str = Field(default="1:1", description="One of the eight studio ratios")
    variations: int = Field(default=1, description="Number of candidates: 1, 2 or 4")
    resource_ids: list[UUID] = Field(
        default_factory=list, description="Uploaded source images to edit"
    )


class VideoGenerationRequest(BaseModel):
    """Video job submission with an optional start frame."""

    prompt: str = Field(..., description="Text prompt (non-empty after trimming)")
    resolution: str = Field(default="720p", description="720p or 1080p")
    aspect_ratio: str = Field(default="16:9", description="Mapped to 16:9 or 9:16")
    resource_id: Optional[UUID] = Field(default=None, description="Optional start frame")


class SubmissionResponse(BaseModel):
    generation_id: UUID


class GenerationRead(BaseModel):
    """Full generation row as returned by the polling read."""

    model_config = ConfigDict(from_attributes=True, protected_namespaces=())

    id: UUID
    kind: GenerationKind
    status: GenerationStatus
    prompt: str
    resolution: str
    aspect_ratio: str
    model_tier: ModelTier
    variation_count: int
    result_urls: list[str]
    error_message: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None


class ErrorResponse(BaseModel):
    """Structured error body for every non-2xx response."""

    error: str
