"""Client-side job poller tests.

The fetch function is an in-memory script of rows, so no HTTP is involved.
"""

import asyncio
from types import SimpleNamespace
from uuid import uuid4

import pytest

from atelier.client.poller import JobPoller
from atelier.models.generation import GenerationStatus


def row(status, result_urls=(), error_message=None):
    return SimpleNamespace(
        status=status, result_urls=list(result_urls), error_message=error_message
    )


class ScriptedFetch:
    """Returns (or raises) the scripted items in order, repeating the last one."""

    def __init__(self, *items):
        self.items = list(items)
        self.calls = 0

    async def __call__(self, generation_id):
        item = self.items[min(self.calls, len(self.items) - 1)]
        self.calls += 1
        if isinstance(item, Exception):
            raise item
        return item


@pytest.mark.asyncio
async def test_success_fires_once_with_row():
    done = row(GenerationStatus.SUCCESS, ["https://cdn.test/0.png"])
    fetch = ScriptedFetch(
        row(GenerationStatus.PENDING), row(GenerationStatus.PROCESSING), done
    )
    successes, errors = [], []
    poller = JobPoller(fetch, on_success=successes.append, on_error=errors.append, interval=0)

    poller.start_polling(uuid4())
    await poller.wait()

    assert successes == [done]
    assert errors == []
    assert fetch.calls == 3
    assert poller.status == GenerationStatus.SUCCESS
    assert not poller.is_polling


@pytest.mark.asyncio
async def test_error_row_reports_message():
    fetch = ScriptedFetch(
        row(GenerationStatus.PROCESSING),
        row(GenerationStatus.ERROR, error_message="Failed to generate any images"),
    )
    errors = []
    poller = JobPoller(fetch, on_error=errors.append, interval=0)

    poller.start_polling(uuid4())
    await poller.wait()

    assert errors == ["Failed to generate any images"]
    assert poller.error == "Failed to generate any images"
    assert poller.status == GenerationStatus.ERROR


@pytest.mark.asyncio
async def test_transient_read_failures_are_retried():
    done = row(GenerationStatus.SUCCESS, ["https://cdn.test/0.png"])
    fetch = ScriptedFetch(ConnectionError("reset"), ConnectionError("reset"), done)
    successes, errors = [], []
    poller = JobPoller(
        fetch, on_success=successes.append, on_error=errors.append, interval=0, max_read_failures=3
    )

    poller.start_polling(uuid4())
    await poller.wait()

    assert successes == [done]
    assert errors == []


@pytest.mark.asyncio
async def test_persistent_read_failures_surface_error():
    fetch = ScriptedFetch(ConnectionError("unreachable"))
    errors = []
    poller = JobPoller(fetch, on_error=errors.append, interval=0, max_read_failures=2)

    poller.start_polling(uuid4())
    await poller.wait()

    assert fetch.calls == 3
    assert len(errors) == 1
    assert "unreachable" in errors[0]


@pytest.mark.asyncio
async def test_stop_polling_suppresses_callbacks():
    release = asyncio.Event()
    calls = []

    async def slow_fetch(generation_id):
        calls.append(generation_id)
        await release.wait()
        return row(GenerationStatus.SUCCESS, ["https://cdn.test/0.png"])

    successes = []
    poller = JobPoller(slow_fetch, on_success=successes.append, interval=0)

    poller.start_polling(uuid4())
    await asyncio.sleep(0)
    assert poller.is_polling

    poller.stop_polling()
    poller.stop_polling()
    release.set()
    await asyncio.sleep(0.01)

    assert len(calls) == 1
    assert successes == []
    assert not poller.is_polling


@pytest.mark.asyncio
async def test_restart_replaces_previous_poll():
    release = asyncio.Event()
    first_id, second_id = uuid4(), uuid4()

    async def fetch(generation_id):
        if generation_id == first_id:
            await release.wait()
            return row(GenerationStatus.ERROR, error_message="stale result")
        return row(GenerationStatus.SUCCESS, ["https://cdn.test/second.png"])

    successes, errors = [], []
    poller = JobPoller(fetch, on_success=successes.append, on_error=errors.append, interval=0)

    poller.start_polling(first_id)
    await asyncio.sleep(0)
    poller.start_polling(second_id)
    release.set()
    await poller.wait()

    assert poller.generation_id == second_id
    assert [s.result_urls for s in successes] == [["https://cdn.test/second.png"]]
    assert errors == []


@pytest.mark.asyncio
async def test_async_callbacks_are_awaited():
    seen = []

    async def on_success(generation):
        await asyncio.sleep(0)
        seen.append(generation.result_urls)

    poller = JobPoller(
        ScriptedFetch(row(GenerationStatus.SUCCESS, ["https://cdn.test/0.png"])),
        on_success=on_success,
        interval=0,
    )

    poller.start_polling(uuid4())
    await poller.wait()

    assert seen == [["https://cdn.test/0.png"]]
