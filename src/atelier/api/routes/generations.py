"""Generation and gallery API endpoints.

This module implements REST endpoints for the generation lifecycle:
- POST /api/generations/images - Submit an image job (edit when resource_ids are given)
- POST /api/generations/videos - Submit a video job
- GET /api/generations/{generation_id} - Point read used for polling
- GET /api/gallery - Paginated list of the caller's successful generations

Every endpoint requires a Supabase access token (Authorization: Bearer <token>).
Service errors are rendered as {"error": message} by the handlers in app.py.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status

from atelier.api.dependencies import (
    get_current_owner,
    get_projector,
    get_settings,
    get_submitter,
    get_uow_factory,
)
from atelier.api.schemas import (
    ErrorResponse,
    GenerationRead,
    ImageGenerationRequest,
    SubmissionResponse,
    VideoGenerationRequest,
)
from atelier.core.config import Settings
from atelier.models.generation import GenerationKind
from atelier.services.gallery import GalleryPage, GalleryProjector
from atelier.services.submitter import JobSubmitter, SubmissionRequest

logger = structlog.get_logger()
router = APIRouter(prefix="/api", tags=["generations"])

MAX_GALLERY_PAGE_SIZE = 100

_ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


@router.post(
    "/generations/images",
    response_model=SubmissionResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses=_ERROR_RESPONSES,
)
async def submit_image_generation(
    request: ImageGenerationRequest,
    owner_id: str = Depends(get_current_owner),
    submitter: JobSubmitter = Depends(get_submitter),
) -> SubmissionResponse:
    """Submit an image generation or edit job.

    Returns as soon as the pending row is committed; poll
    GET /api/generations/{generation_id} for the result.

    Example:
        POST /api/generations/images
        {
            "prompt": "a lighthouse at dusk, oil painting",
            "resolution": "2K",
            "aspect_ratio": "4:5",
            "variations": 4
        }

        Response 202:
        {"generation_id": "4f9c2a9e-..."}
    """
    kind = GenerationKind.EDIT if request.resource_ids else GenerationKind.GENERATE
    generation_id = await submitter.submit(
        owner_id,
        SubmissionRequest(
            kind=kind,
            prompt=request.prompt,
            resolution=request.resolution,
            aspect_ratio=request.aspect_ratio,
            model_tier=request.model_tier,
            variation_count=request.variations,
            resource_ids=list(request.resource_ids),
        ),
    )
    return SubmissionResponse(generation_id=generation_id)


@router.post(
    "/generations/videos",
    response_model=SubmissionResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses=_ERROR_RESPONSES,
)
async def submit_video_generation(
    request: VideoGenerationRequest,
    owner_id: str = Depends(get_current_owner),
    submitter: JobSubmitter = Depends(get_submitter),
) -> SubmissionResponse:
    """Submit a video job, optionally animating an uploaded start frame."""
    generation_id = await submitter.submit(
        owner_id,
        SubmissionRequest(
            kind=GenerationKind.VIDEO,
            prompt=request.prompt,
            resolution=request.resolution,
            aspect_ratio=request.aspect_ratio,
            resource_ids=[request.resource_id] if request.resource_id else [],
        ),
    )
    return SubmissionResponse(generation_id=generation_id)


@router.get(
    "/generations/{generation_id}",
    response_model=GenerationRead,
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def get_generation(
    generation_id: UUID,
    owner_id: str = Depends(get_current_owner),
    uow_factory=Depends(get_uow_factory),
) -> GenerationRead:
    """Read one generation. Other users' generations are reported as not found."""
    async with await uow_factory() as uow:
        generation = await uow.generations.get_for_owner(generation_id, owner_id)

    if generation is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Generation not found")

    return GenerationRead.model_validate(generation)


@router.get("/gallery", response_model=GalleryPage, responses={401: {"model": ErrorResponse}})
async def list_gallery(
    limit: Optional[int] = Query(default=None, description="Page size (1-100)"),
    before: Optional[datetime] = Query(
        default=None, description="Only items created strictly before this timestamp"
    ),
    owner_id: str = Depends(get_current_owner),
    projector: GalleryProjector = Depends(get_projector),
    settings: Settings = Depends(get_settings),
) -> GalleryPage:
    """List the caller's successful generations, newest first.

    Example:
        GET /api/gallery?limit=8&before=2026-03-01T12:00:00

        Response 200:
        {
            "items": [{"id": "...", "type": "image", "resultUrls": ["..."], ...}],
            "has_more": true
        }
    """
    page_size = limit if limit is not None else settings.gallery_page_size
    page_size = max(1, min(page_size, MAX_GALLERY_PAGE_SIZE))

    if before is not None and before.tzinfo is not None:
        # Stored timestamps are naive UTC
        before = before.astimezone(timezone.utc).replace(tzinfo=None)

    page = await projector.list(owner_id, page_size, before)
    logger.debug("gallery.listed", owner_id=owner_id, count=len(page.items), has_more=page.has_more)
    return page
