"""Stale generation reaper.

Marks generations that have sat in pending or processing for longer than
STALE_JOB_TIMEOUT_MINUTES as error. This covers jobs whose worker crashed
mid-flight or that were never claimed, so no row waits forever.
"""

import asyncio
from datetime import timedelta
from typing import Callable
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.core.config import Settings
from atelier.core.timezone import utcnow
from atelier.repositories.generation import GenerationRepository

logger = structlog.get_logger(__name__)

STALE_ERROR_MESSAGE = "Generation timed out"


async def reap_stale_generations(
    session: AsyncSession,
    older_than: timedelta,
    dry_run: bool = False,
) -> list[UUID]:
    """Mark stale non-terminal generations as error.

    Query:
        SELECT ... FROM generations
        WHERE status IN ('pending', 'processing') AND updated_at < now() - older_than
        FOR UPDATE SKIP LOCKED

    Args:
        session: Database session (committed here unless dry_run)
        older_than: Age of the last status change that counts as stale
        dry_run: Identify stale rows without writing

    Returns:
        Ids of the stale generations
    """
    repo = GenerationRepository(session)
    stale = await repo.get_stale(updated_before=utcnow() - older_than)
    # Rollback expires the instances, read ids first
    stale_ids = [generation.id for generation in stale]

    if dry_run:
        await session.rollback()
        return stale_ids

    for generation in stale:
        previous_status = generation.status.value
        generation.mark_error(STALE_ERROR_MESSAGE)
        session.add(generation)
        logger.warning(
            "reaper.reaped",
            generation_id=str(generation.id),
            previous_status=previous_status,
        )
    await session.commit()

    return stale_ids


async def run_reaper_worker(session_factory: Callable, settings: Settings) -> None:
    """Periodically reap stale generations until cancelled."""
    older_than = timedelta(minutes=settings.stale_job_timeout_minutes)

    logger.info(
        "reaper.started",
        interval=settings.reaper_interval_seconds,
        stale_after_minutes=settings.stale_job_timeout_minutes,
    )

    try:
        while True:
            try:
                async with session_factory() as session:
                    reaped = await reap_stale_generations(session, older_than)
                if reaped:
                    logger.info("reaper.cycle_completed", reaped_count=len(reaped))

                await asyncio.sleep(settings.reaper_interval_seconds)

            except asyncio.CancelledError:
                raise

            except Exception as e:
                logger.error(
                    "reaper.error",
                    error_type=type(e).__name__,
                    error_message=str(e),
                    exc_info=True,
                )
                await asyncio.sleep(5)

    except asyncio.CancelledError:
        logger.info("reaper.stopped")
        raise
