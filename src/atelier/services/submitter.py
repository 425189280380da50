"""Job submission: validate a request, persist a pending Generation, dispatch it.

The committed pending row is the durable queue entry. Dispatch only wakes the
worker early; if the wake-up is lost the worker's claim loop still finds the
row on its next tick.
"""

from dataclasses import dataclass, field
from typing import Callable, Optional
from uuid import UUID

import structlog
from sqlalchemy.exc import SQLAlchemyError

from atelier.models.generation import (
    Generation,
    GenerationKind,
    GenerationStatus,
    InvalidStateTransition,
    ModelTier,
)
from atelier.services.exceptions import AuthError, PersistenceError, ValidationError
from atelier.services.generation.aspect_ratio import (
    STUDIO_ASPECT_RATIOS,
    ModelFamily,
    normalize_aspect_ratio,
)
from atelier.services.generation.prompt_validator import validate_prompt

logger = structlog.get_logger(__name__)

IMAGE_RESOLUTIONS = ("1K", "2K", "4K")
VIDEO_RESOLUTIONS = ("720p", "1080p")
VARIATION_COUNTS = (1, 2, 4)


@dataclass
class SubmissionRequest:
    """Transport-agnostic generation request."""

    kind: GenerationKind
    prompt: str
    resolution: str
    aspect_ratio: str
    model_tier: Optional[ModelTier] = None
    variation_count: int = 1
    resource_ids: list[UUID] = field(default_factory=list)


def default_model_tier(resolution: str) -> ModelTier:
    """1K renders on the Basic tier; anything larger needs Pro."""
    return ModelTier.BASIC if resolution == "1K" else ModelTier.PRO


def validate_request(request: SubmissionRequest) -> Generation:
    """Validate a request and build the pending Generation it describes.

    Owner is filled in by the caller.

    Raises:
        ValidationError: On any invalid field
    """
    prompt = validate_prompt(request.prompt)

    try:
        kind = GenerationKind(request.kind)
    except ValueError:
        raise ValidationError(f"Unsupported generation kind: {request.kind}")

    if request.aspect_ratio not in STUDIO_ASPECT_RATIOS:
        raise ValidationError(
            f"Unsupported aspect ratio {request.aspect_ratio}. "
            f"Choose one of: {', '.join(STUDIO_ASPECT_RATIOS)}"
        )

    if kind is GenerationKind.VIDEO:
        if request.resolution not in VIDEO_RESOLUTIONS:
            raise ValidationError(
                f"Unsupported video resolution {request.resolution}. "
                f"Choose one of: {', '.join(VIDEO_RESOLUTIONS)}"
            )
        if len(request.resource_ids) > 1:
            raise ValidationError("Video generation accepts at most one start frame")
        return Generation(
            owner_id="",
            kind=kind,
            status=GenerationStatus.PENDING,
            prompt=prompt,
            resolution=request.resolution,
            aspect_ratio=normalize_aspect_ratio(request.aspect_ratio, ModelFamily.VIDEO),
            model_tier=ModelTier.PRO,
            variation_count=1,
        )

    if request.resolution not in IMAGE_RESOLUTIONS:
        raise ValidationError(
            f"Unsupported resolution {request.resolution}. "
            f"Choose one of: {', '.join(IMAGE_RESOLUTIONS)}"
        )
    if request.variation_count not in VARIATION_COUNTS:
        raise ValidationError(
            f"Variation count must be one of {VARIATION_COUNTS}, got {request.variation_count}"
        )
    if kind is GenerationKind.EDIT and not request.resource_ids:
        raise ValidationError("Editing requires at least one source image")
    if kind is GenerationKind.GENERATE and request.resource_ids:
        raise ValidationError("Source images are only accepted for edit jobs")

    model_tier = (
        ModelTier(request.model_tier)
        if request.model_tier is not None
        else default_model_tier(request.resolution)
    )

    return Generation(
        owner_id="",
        kind=kind,
        status=GenerationStatus.PENDING,
        prompt=prompt,
        resolution=request.resolution,
        aspect_ratio=normalize_aspect_ratio(request.aspect_ratio, ModelFamily.IMAGE),
        model_tier=model_tier,
        variation_count=request.variation_count,
    )


class JobSubmitter:
    """Creates generation jobs and hands them to the background worker.

    Example:
        submitter = JobSubmitter(uow_factory, dispatch=worker_signal.notify)
        generation_id = await submitter.submit(user_id, SubmissionRequest(...))
    """

    def __init__(self, uow_factory: Callable, dispatch: Optional[Callable[[UUID], None]] = None):
        """Initialize submitter.

        Args:
            uow_factory: Factory returned by create_uow_factory()
            dispatch: Called with the new id after commit to wake the worker
        """
        self.uow_factory = uow_factory
        self.dispatch = dispatch

    async def submit(self, owner_id: Optional[str], request: SubmissionRequest) -> UUID:
        """Validate, insert a pending row, link resources and dispatch.

        Returns:
            The new generation id (row is pending when this returns)

        Raises:
            AuthError: If owner_id is empty
            ValidationError: If the request or its resources are invalid
            PersistenceError: If the insert fails (nothing is dispatched)
        """
        if not owner_id:
            raise AuthError("Unauthorized")

        generation = validate_request(request)
        generation.owner_id = owner_id

        try:
            async with await self.uow_factory() as uow:
                await uow.generations.add(generation)

                if request.resource_ids:
                    resources = await uow.resources.get_by_ids(list(request.resource_ids))
                    found = {resource.id for resource in resources}
                    missing = [str(rid) for rid in request.resource_ids if rid not in found]
                    if missing:
                        raise ValidationError(f"Unknown resource(s): {', '.join(missing)}")
                    foreign = [str(r.id) for r in resources if r.owner_id != owner_id]
                    if foreign:
                        raise ValidationError(f"Resource(s) not owned by caller: {', '.join(foreign)}")
                    try:
                        await uow.resources.link_to_generation(resources, generation.id)
                    except InvalidStateTransition as e:
                        raise ValidationError(str(e)) from e

                generation_id = generation.id
        except SQLAlchemyError as e:
            logger.error(
                "generation.insert_failed",
                owner_id=owner_id,
                kind=generation.kind.value,
                error_type=type(e).__name__,
                error_message=str(e),
            )
            raise PersistenceError(f"Failed to create generation: {e}") from e

        logger.info(
            "generation.submitted",
            generation_id=str(generation_id),
            owner_id=owner_id,
            kind=generation.kind.value,
            variation_count=generation.variation_count,
            resource_count=len(request.resource_ids),
        )

        if self.dispatch is not None:
            try:
                self.dispatch(generation_id)
            except Exception as e:
                # Row stays pending; the claim loop picks it up on its next tick
                logger.warning(
                    "generation.dispatch_failed",
                    generation_id=str(generation_id),
                    error_type=type(e).__name__,
                    error_message=str(e),
                )

        return generation_id
