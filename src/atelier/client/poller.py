"""Client-side polling of a submitted generation until it reaches a terminal state.

One JobPoller tracks at most one generation. Starting a new poll or stopping
bumps an epoch counter; a tick that was in flight under an older epoch drops
its result instead of reporting it, so a stopped poller never calls back.
"""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Optional
from uuid import UUID

import structlog

from atelier.models.generation import GenerationStatus

logger = structlog.get_logger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 2.0


async def _maybe_await(result: Any) -> None:
    if inspect.isawaitable(result):
        await result


class JobPoller:
    """Polls a generation by id every ``interval`` seconds.

    Example:
        poller = JobPoller(client.get_generation, on_success=show_results, on_error=show_error)
        poller.start_polling(generation_id)
        ...
        poller.stop_polling()

    ``fetch`` takes a generation id and returns an object with ``status``,
    ``result_urls`` and ``error_message`` (GenerationRead from the client).
    ``on_success`` receives that object; ``on_error`` receives a message string.
    Callbacks may be plain functions or coroutines.
    """

    def __init__(
        self,
        fetch: Callable[[UUID], Awaitable[Any]],
        on_success: Optional[Callable[[Any], Any]] = None,
        on_error: Optional[Callable[[str], Any]] = None,
        interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        max_read_failures: int = 3,
    ):
        self._fetch = fetch
        self._on_success = on_success
        self._on_error = on_error
        self.interval = interval
        self.max_read_failures = max_read_failures

        self._epoch = 0
        self._task: Optional[asyncio.Task] = None
        self._generation_id: Optional[UUID] = None
        self._generation: Any = None
        self._error: Optional[str] = None

    @property
    def generation_id(self) -> Optional[UUID]:
        return self._generation_id

    @property
    def generation(self) -> Any:
        """Last row read, or None before the first successful read."""
        return self._generation

    @property
    def status(self) -> Optional[GenerationStatus]:
        if self._generation is None:
            return None
        return GenerationStatus(self._generation.status)

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def is_polling(self) -> bool:
        return self._task is not None and not self._task.done()

    def start_polling(self, generation_id: UUID) -> None:
        """Begin polling ``generation_id``, replacing any poll in progress.

        The first read happens immediately. Must be called from a running loop.
        """
        self.stop_polling()
        self._epoch += 1
        self._generation_id = generation_id
        self._generation = None
        self._error = None
        self._task = asyncio.create_task(self._run(generation_id, self._epoch))
        logger.debug("poller.started", generation_id=str(generation_id))

    def stop_polling(self) -> None:
        """Stop polling. Idempotent; no callback fires after this returns."""
        self._epoch += 1
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            logger.debug("poller.stopped", generation_id=str(self._generation_id))

    async def wait(self) -> None:
        """Wait for the current poll to finish (terminal state, error or stop)."""
        task = self._task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            if not task.cancelled():
                raise

    async def _run(self, generation_id: UUID, epoch: int) -> None:
        failures = 0
        while True:
            try:
                row = await self._fetch(generation_id)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if epoch != self._epoch:
                    return
                failures += 1
                logger.warning(
                    "poller.read_failed",
                    generation_id=str(generation_id),
                    failures=failures,
                    error_type=type(e).__name__,
                    error_message=str(e),
                )
                if failures > self.max_read_failures:
                    await self._finish_error(epoch, f"Failed to check generation status: {e}")
                    return
                await asyncio.sleep(self.interval)
                continue

            if epoch != self._epoch:
                return
            failures = 0
            self._generation = row

            status = GenerationStatus(row.status)
            if status == GenerationStatus.SUCCESS:
                self._task = None
                if self._on_success is not None:
                    await _maybe_await(self._on_success(row))
                return
            if status == GenerationStatus.ERROR:
                await self._finish_error(epoch, row.error_message or "Generation failed")
                return

            await asyncio.sleep(self.interval)

    async def _finish_error(self, epoch: int, message: str) -> None:
        if epoch != self._epoch:
            return
        self._error = message
        self._task = None
        if self._on_error is not None:
            await _maybe_await(self._on_error(message))
