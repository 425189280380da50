"""pytest fixtures for atelier backend tests.

Provides:
- utc_timezone: Autouse fixture enforcing UTC timezone
- session_factory: Function-scoped session factory over a fresh SQLite database
- uow_factory: Function-scoped UnitOfWork factory
- settings: Test settings with zero poll delays
- provider / storage: In-memory stand-ins for Replicate and Supabase Storage
"""

import os
from datetime import timedelta
from typing import AsyncGenerator, Optional
from uuid import UUID

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

import atelier.models  # noqa: F401
from atelier.core.config import Settings
from atelier.core.timezone import utcnow
from atelier.models.generation import Generation, GenerationKind, GenerationStatus, ModelTier
from atelier.services.exceptions import StorageError, UpstreamError
from atelier.services.generation.replicate_client import VideoOperation
from atelier.uow import create_uow_factory


@pytest.fixture(scope="session", autouse=True)
def utc_timezone():
    """Enforce UTC timezone for all tests."""
    os.environ["TZ"] = "UTC"
    yield


@pytest_asyncio.fixture(scope="function")
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Provide a session factory bound to an empty per-test SQLite database.

    The schema comes from SQLModel metadata. SQLite ignores FOR UPDATE, which
    is fine for single-worker tests.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'atelier.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def uow_factory(session_factory):
    """Provide function-scoped UnitOfWork factory."""
    return create_uow_factory(session_factory)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        app_env="test",
        worker_poll_interval_seconds=0.01,
        worker_batch_size=4,
        video_poll_interval_seconds=0,
        video_operation_timeout_seconds=5,
    )


def make_generation(
    owner_id: str = "user-1",
    kind: GenerationKind = GenerationKind.GENERATE,
    status: GenerationStatus = GenerationStatus.PENDING,
    **overrides,
) -> Generation:
    """Build a Generation row in the requested state."""
    fields = dict(
        owner_id=owner_id,
        kind=kind,
        prompt="a lighthouse at dusk",
        resolution="720p" if kind == GenerationKind.VIDEO else "1K",
        aspect_ratio="16:9" if kind == GenerationKind.VIDEO else "1:1",
        model_tier=ModelTier.PRO if kind == GenerationKind.VIDEO else ModelTier.BASIC,
        variation_count=1,
    )
    fields.update(overrides)
    generation = Generation(**fields)

    if status != GenerationStatus.PENDING:
        generation.mark_processing()
    if status == GenerationStatus.SUCCESS:
        generation.mark_success([f"https://cdn.test/{generation.id}/0.png"])
    elif status == GenerationStatus.ERROR:
        generation.mark_error("Generation failed")
    return generation


async def insert(session_factory, *rows):
    """Commit rows in their own session and return them."""
    async with session_factory() as session:
        for row in rows:
            session.add(row)
        await session.commit()
    return rows


async def reload(session_factory, generation_id) -> Generation:
    async with session_factory() as session:
        generation = await session.get(Generation, UUID(str(generation_id)))
        assert generation is not None
        return generation


class FakeProvider:
    """In-memory generation provider.

    Image calls are numbered from 1 in call order; numbers in ``fail_calls``
    raise UpstreamError. Video operations finish after ``video_polls`` refreshes.
    """

    def __init__(
        self,
        fail_calls: tuple[int, ...] = (),
        video_polls: int = 3,
        video_error: Optional[str] = None,
    ):
        self.fail_calls = set(fail_calls)
        self.video_polls = video_polls
        self.video_error = video_error
        self.image_calls: list[dict] = []
        self.video_starts: list[dict] = []
        self.poll_count = 0

    async def generate_image(self, prompt, model_tier, resolution, aspect_ratio, source_images=()):
        self.image_calls.append(
            dict(
                prompt=prompt,
                model_tier=model_tier,
                resolution=resolution,
                aspect_ratio=aspect_ratio,
                source_images=list(source_images),
            )
        )
        if len(self.image_calls) in self.fail_calls:
            raise UpstreamError("Content policy violation: blocked")
        return b"\x89PNG" + str(len(self.image_calls)).encode()

    async def start_video(self, prompt, resolution, aspect_ratio, start_frame=None):
        self.video_starts.append(
            dict(
                prompt=prompt,
                resolution=resolution,
                aspect_ratio=aspect_ratio,
                start_frame=start_frame,
            )
        )
        return VideoOperation(id="op-1", done=False)

    async def get_video_operation(self, operation):
        self.poll_count += 1
        if self.poll_count < self.video_polls:
            return VideoOperation(id=operation.id, done=False)
        if self.video_error:
            return VideoOperation(id=operation.id, done=True, error=self.video_error)
        return VideoOperation(
            id=operation.id, done=True, output_url="https://replicate.test/output.mp4"
        )

    async def download(self, url):
        return b"video-bytes"


class FakeStorage:
    """In-memory object storage."""

    def __init__(self, resources: Optional[dict[str, bytes]] = None):
        self.resources = dict(resources or {})
        self.uploads: dict[str, tuple[bytes, str]] = {}

    async def download_resource(self, storage_path):
        if storage_path not in self.resources:
            raise StorageError(f"Failed to download resource {storage_path}: not found")
        return self.resources[storage_path]

    async def upload_artifact(self, path, data, content_type):
        self.uploads[path] = (data, content_type)
        return f"https://cdn.test/{path}"


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def minutes_ago():
    """Naive-UTC timestamp ``n`` minutes in the past."""

    def _minutes_ago(n: float):
        return utcnow() - timedelta(minutes=n)

    return _minutes_ago
