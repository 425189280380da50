"""Generation worker for processing submitted jobs.

Claims pending generations, runs them against the model provider, uploads the
artifacts and records the terminal state on the row.

## Queue semantics

The ``generations`` table is the queue. ``claim_batch`` locks pending rows
with FOR UPDATE SKIP LOCKED and flips them to ``processing`` in the same
transaction, so each job is started by exactly one worker. Submitters call
``WorkerSignal.notify`` after commit to wake the loop early; without the
signal a job is still picked up on the next poll tick.

## Session handling

Like the claim step, each job uses its own session with explicit commits
rather than a Unit of Work. The loading transaction ends before any provider
call, and the terminal write runs in its own short transaction that holds the
row lock. On failure the session rolls back before the error is written.

## Failure policy

- Image kinds: each variation slot is independent. A failed slot (model call
  or upload) is logged and dropped; the job succeeds if any slot succeeded.
- Video: a single attempt. Any failure in start, polling, download or upload
  fails the job.
- Every exception after the row is ``processing`` becomes an ``error`` row.
- Terminal writes re-read the row under FOR UPDATE. If the reaper already
  timed it out, the job's outcome is logged and dropped.
"""

import asyncio
import time
from typing import Any, Callable, Optional
from uuid import UUID

import structlog

from atelier.core.config import Settings
from atelier.models.generation import Generation, GenerationKind, GenerationStatus
from atelier.models.resource import Resource
from atelier.repositories.generation import GenerationRepository
from atelier.repositories.resource import ResourceRepository
from atelier.services.exceptions import StorageError, UpstreamError
from atelier.services.generation.replicate_client import SourceImage
from atelier.services.storage.supabase_storage import artifact_path

logger = structlog.get_logger(__name__)


class WorkerSignal:
    """Wake-up signal from submitters to the worker loop."""

    def __init__(self) -> None:
        self.event = asyncio.Event()

    def notify(self, generation_id: Optional[UUID] = None) -> None:
        self.event.set()

    async def wait(self, timeout: float) -> None:
        """Wait until notified or until ``timeout`` seconds pass."""
        try:
            await asyncio.wait_for(self.event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            pass
        finally:
            self.event.clear()


async def claim_batch(session_factory: Callable, limit: int) -> list[UUID]:
    """Claim up to ``limit`` pending generations and mark them processing.

    Returns:
        Ids of the claimed generations (already committed as processing)
    """
    async with session_factory() as session:
        repo = GenerationRepository(session)
        claimed = await repo.claim_pending(limit=limit)
        await session.commit()

    for generation in claimed:
        logger.info(
            "generation.processing",
            generation_id=str(generation.id),
            kind=generation.kind.value,
            variation_count=generation.variation_count,
        )
    return [generation.id for generation in claimed]


async def _load_source_images(
    resources: list[Resource],
    storage: Any,
    generation_id: UUID,
) -> list[SourceImage]:
    """Download linked resources, skipping any that fail."""
    images = []
    for resource in resources:
        try:
            data = await storage.download_resource(resource.storage_path)
        except StorageError as e:
            logger.warning(
                "generation.resource_download_failed",
                generation_id=str(generation_id),
                resource_id=str(resource.id),
                error_message=str(e),
            )
            continue
        images.append(SourceImage(data=data, mime_type=resource.mime_type))
    return images


async def _run_image_job(
    generation: Generation,
    resources: list[Resource],
    provider: Any,
    storage: Any,
) -> list[str]:
    """Fan out one provider call per variation and upload what comes back."""
    source_images: list[SourceImage] = []
    if generation.kind == GenerationKind.EDIT:
        if not resources:
            raise UpstreamError("No source images found")
        source_images = await _load_source_images(resources, storage, generation.id)
        if not source_images:
            raise UpstreamError("Failed to load source images")

    async def _run_slot(slot: int) -> str:
        data = await provider.generate_image(
            prompt=generation.prompt,
            model_tier=generation.model_tier,
            resolution=generation.resolution,
            aspect_ratio=generation.aspect_ratio,
            source_images=source_images,
        )
        path = artifact_path(generation.owner_id, generation.id, slot, is_video=False)
        return await storage.upload_artifact(path, data, "image/png")

    results = await asyncio.gather(
        *(_run_slot(slot) for slot in range(generation.variation_count)),
        return_exceptions=True,
    )

    result_urls = []
    for slot, result in enumerate(results):
        if isinstance(result, BaseException):
            logger.warning(
                "generation.variation_failed",
                generation_id=str(generation.id),
                slot=slot,
                error_type=type(result).__name__,
                error_message=str(result),
            )
            continue
        result_urls.append(result)

    if not result_urls:
        verb = "edit" if generation.kind == GenerationKind.EDIT else "generate"
        raise UpstreamError(f"Failed to {verb} any images")

    return result_urls


async def _run_video_job(
    generation: Generation,
    resources: list[Resource],
    provider: Any,
    storage: Any,
    settings: Settings,
) -> list[str]:
    """Start one video operation, poll it to completion, store the result."""
    start_frame = None
    if resources:
        resource = resources[0]
        data = await storage.download_resource(resource.storage_path)
        start_frame = SourceImage(data=data, mime_type=resource.mime_type)

    operation = await provider.start_video(
        prompt=generation.prompt,
        resolution=generation.resolution,
        aspect_ratio=generation.aspect_ratio,
        start_frame=start_frame,
    )

    loop = asyncio.get_running_loop()
    deadline = loop.time() + settings.video_operation_timeout_seconds
    polls = 0
    while not operation.done:
        if loop.time() >= deadline:
            raise UpstreamError(
                f"Video generation timed out after {settings.video_operation_timeout_seconds:.0f}s"
            )
        await asyncio.sleep(settings.video_poll_interval_seconds)
        operation = await provider.get_video_operation(operation)
        polls += 1
        logger.debug(
            "generation.video_polled",
            generation_id=str(generation.id),
            operation_id=operation.id,
            polls=polls,
            done=operation.done,
        )

    if operation.error:
        raise UpstreamError(f"Video generation failed: {operation.error}")
    if not operation.output_url:
        raise UpstreamError("Video generation failed: No download link returned")

    video = await provider.download(operation.output_url)
    path = artifact_path(generation.owner_id, generation.id, 0, is_video=True)
    url = await storage.upload_artifact(path, video, "video/mp4")
    return [url]


async def _lock_if_processing(
    session: Any,
    generation_repo: GenerationRepository,
    generation_id: UUID,
    outcome: str,
) -> Optional[Generation]:
    """Lock the row for a terminal write if it is still processing.

    The reaper may have timed the row out while the job ran. In that case the
    row is already terminal, the transaction is rolled back and the job's
    outcome is dropped.
    """
    generation = await generation_repo.get_for_update(generation_id)
    if generation is not None and generation.status == GenerationStatus.PROCESSING:
        return generation

    status = generation.status.value if generation is not None else None
    await session.rollback()
    logger.warning(
        "generation.outcome_discarded",
        generation_id=str(generation_id),
        outcome=outcome,
        status=status,
    )
    return None


async def process_generation(
    generation_id: UUID,
    session_factory: Callable,
    provider: Any,
    storage: Any,
    settings: Settings,
) -> None:
    """Run one claimed generation to a terminal state.

    Workflow:
    1. Load the generation (already processing) and its linked resources
    2. Run the image fan-out or the video operation
    3. Lock the row and commit success with result URLs, or roll back and
       commit error. Either write is skipped if the row left processing.

    Args:
        generation_id: Id returned by claim_batch
        session_factory: Factory function to create new database sessions
        provider: Model provider (ReplicateProvider in production)
        storage: Object storage adapter (SupabaseStorage in production)
        settings: Application settings (video polling, timeouts)

    Raises:
        ValueError: If the generation does not exist
        Exception: Database errors while recording the terminal state
    """
    start_time = time.time()

    async with session_factory() as session:
        generation_repo = GenerationRepository(session)
        resource_repo = ResourceRepository(session)

        generation = await generation_repo.get_by_id(generation_id)
        if generation is None:
            raise ValueError(f"Generation {generation_id} not found")

        if generation.status != GenerationStatus.PROCESSING:
            logger.warning(
                "generation.skipped",
                generation_id=str(generation_id),
                status=generation.status.value,
            )
            return

        try:
            resources = await resource_repo.get_by_generation(generation.id)
            # No transaction stays open while the provider runs
            await session.commit()

            if generation.kind == GenerationKind.VIDEO:
                result_urls = await _run_video_job(generation, resources, provider, storage, settings)
            else:
                result_urls = await _run_image_job(generation, resources, provider, storage)

            generation = await _lock_if_processing(
                session, generation_repo, generation_id, outcome="success"
            )
            if generation is None:
                return

            generation.mark_success(result_urls)
            session.add(generation)
            await session.commit()

            logger.info(
                "generation.succeeded",
                generation_id=str(generation_id),
                kind=generation.kind.value,
                result_count=len(result_urls),
                requested=generation.variation_count,
                duration_seconds=time.time() - start_time,
            )

        except asyncio.CancelledError:
            # Shutdown mid-job: the row stays processing until the reaper times it out
            logger.warning("generation.interrupted", generation_id=str(generation_id))
            raise

        except Exception as e:
            await session.rollback()
            error_message = str(e) or type(e).__name__

            generation = await _lock_if_processing(
                session, generation_repo, generation_id, outcome="error"
            )
            if generation is None:
                logger.warning(
                    "generation.failed_after_timeout",
                    generation_id=str(generation_id),
                    error_type=type(e).__name__,
                    error_message=error_message,
                )
                return

            generation.mark_error(error_message)
            session.add(generation)
            await session.commit()

            logger.error(
                "generation.failed",
                generation_id=str(generation_id),
                kind=generation.kind.value,
                error_type=type(e).__name__,
                error_message=error_message,
                duration_seconds=time.time() - start_time,
            )


async def _process_logged(generation_id: UUID, *args: Any) -> None:
    """process_generation wrapper for fire-and-forget tasks."""
    try:
        await process_generation(generation_id, *args)
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.error(
            "generation.unrecorded_failure",
            generation_id=str(generation_id),
            error_type=type(e).__name__,
            error_message=str(e),
            exc_info=True,
        )


async def run_generation_worker(
    session_factory: Callable,
    settings: Settings,
    *,
    provider: Any,
    storage: Any,
    signal: Optional[WorkerSignal] = None,
) -> None:
    """Main worker loop for generation jobs.

    Keeps up to WORKER_BATCH_SIZE jobs in flight. Claims new work whenever a
    slot is free, then sleeps until notified or WORKER_POLL_INTERVAL_SECONDS.

    Args:
        session_factory: Factory function that creates database sessions
        settings: Application settings (poll interval, batch size, video polling)
        provider: Model provider
        storage: Object storage adapter
        signal: Optional wake-up signal set by submitters
    """
    signal = signal or WorkerSignal()
    in_flight: set[asyncio.Task] = set()

    logger.info(
        "worker.started",
        poll_interval=settings.worker_poll_interval_seconds,
        batch_size=settings.worker_batch_size,
    )

    try:
        while True:
            try:
                capacity = settings.worker_batch_size - len(in_flight)
                if capacity > 0:
                    for generation_id in await claim_batch(session_factory, capacity):
                        task = asyncio.create_task(
                            _process_logged(generation_id, session_factory, provider, storage, settings)
                        )
                        in_flight.add(task)
                        task.add_done_callback(in_flight.discard)

                await signal.wait(settings.worker_poll_interval_seconds)

            except asyncio.CancelledError:
                raise

            except Exception as e:
                logger.error(
                    "worker.error",
                    error_type=type(e).__name__,
                    error_message=str(e),
                    exc_info=True,
                )
                await asyncio.sleep(5)

    except asyncio.CancelledError:
        for task in in_flight:
            task.cancel()
        await asyncio.gather(*in_flight, return_exceptions=True)
        logger.info("worker.stopped")
        raise
