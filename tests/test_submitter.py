"""Job submission tests.

Covers request validation, model tier defaults, aspect ratio normalization,
resource linking rules and dispatch behavior.
"""

from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from atelier.models.generation import Generation, GenerationKind, GenerationStatus, ModelTier
from atelier.models.resource import Resource
from atelier.services.exceptions import AuthError, PersistenceError, ValidationError
from atelier.services.submitter import JobSubmitter, SubmissionRequest, default_model_tier
from conftest import insert, make_generation, reload


def image_request(**overrides) -> SubmissionRequest:
    fields = dict(
        kind=GenerationKind.GENERATE,
        prompt="  a lighthouse at dusk  ",
        resolution="1K",
        aspect_ratio="1:1",
    )
    fields.update(overrides)
    return SubmissionRequest(**fields)


def make_resource(owner_id="user-1", **overrides) -> Resource:
    fields = dict(owner_id=owner_id, storage_path=f"{owner_id}/{uuid4()}.png", mime_type="image/png")
    fields.update(overrides)
    return Resource(**fields)


async def all_generations(session_factory) -> list[Generation]:
    async with session_factory() as session:
        result = await session.execute(select(Generation))
        return list(result.scalars().all())


@pytest.mark.asyncio
async def test_submit_creates_pending_row_and_dispatches(uow_factory, session_factory):
    dispatched = []
    submitter = JobSubmitter(uow_factory, dispatch=dispatched.append)

    generation_id = await submitter.submit("user-1", image_request(variation_count=4))

    assert dispatched == [generation_id]
    generation = await reload(session_factory, generation_id)
    assert generation.status == GenerationStatus.PENDING
    assert generation.owner_id == "user-1"
    assert generation.prompt == "a lighthouse at dusk"
    assert generation.variation_count == 4
    assert generation.model_tier == ModelTier.BASIC
    assert generation.result_urls == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides, message",
    [
        (dict(prompt="   "), "Prompt cannot be empty"),
        (dict(prompt="x" * 2001), "maximum length"),
        (dict(variation_count=3), "Variation count"),
        (dict(resolution="8K"), "Unsupported resolution"),
        (dict(aspect_ratio="2:1"), "Unsupported aspect ratio"),
        (dict(kind=GenerationKind.EDIT), "at least one source image"),
        (dict(resource_ids=[uuid4()]), "only accepted for edit"),
        (dict(kind=GenerationKind.VIDEO, resolution="1K"), "Unsupported video resolution"),
        (
            dict(kind=GenerationKind.VIDEO, resolution="720p", resource_ids=[uuid4(), uuid4()]),
            "at most one start frame",
        ),
    ],
)
async def test_invalid_requests_create_nothing(uow_factory, session_factory, overrides, message):
    dispatched = []
    submitter = JobSubmitter(uow_factory, dispatch=dispatched.append)

    with pytest.raises(ValidationError, match=message):
        await submitter.submit("user-1", image_request(**overrides))

    assert dispatched == []
    assert await all_generations(session_factory) == []


@pytest.mark.asyncio
async def test_missing_owner_is_auth_error(uow_factory):
    with pytest.raises(AuthError):
        await JobSubmitter(uow_factory).submit(None, image_request())


@pytest.mark.parametrize(
    "resolution, tier",
    [("1K", ModelTier.BASIC), ("2K", ModelTier.PRO), ("4K", ModelTier.PRO)],
)
def test_default_model_tier(resolution, tier):
    assert default_model_tier(resolution) == tier


@pytest.mark.asyncio
async def test_explicit_tier_and_normalized_ratio(uow_factory, session_factory):
    submitter = JobSubmitter(uow_factory)

    generation_id = await submitter.submit(
        "user-1",
        image_request(resolution="1K", model_tier=ModelTier.PRO, aspect_ratio="4:5"),
    )

    generation = await reload(session_factory, generation_id)
    assert generation.model_tier == ModelTier.PRO
    assert generation.aspect_ratio == "3:4"


@pytest.mark.asyncio
async def test_video_is_pro_single_variation(uow_factory, session_factory):
    submitter = JobSubmitter(uow_factory)

    generation_id = await submitter.submit(
        "user-1",
        image_request(kind=GenerationKind.VIDEO, resolution="1080p", aspect_ratio="1:1"),
    )

    generation = await reload(session_factory, generation_id)
    assert generation.kind == GenerationKind.VIDEO
    assert generation.model_tier == ModelTier.PRO
    assert generation.variation_count == 1
    assert generation.aspect_ratio == "16:9"


@pytest.mark.asyncio
async def test_edit_links_resources(uow_factory, session_factory):
    resources = [make_resource(), make_resource()]
    await insert(session_factory, *resources)

    generation_id = await JobSubmitter(uow_factory).submit(
        "user-1",
        image_request(kind=GenerationKind.EDIT, resource_ids=[r.id for r in resources]),
    )

    async with await uow_factory() as uow:
        linked = await uow.resources.get_by_generation(generation_id)
    assert {r.id for r in linked} == {r.id for r in resources}


@pytest.mark.asyncio
async def test_edit_rejects_foreign_unknown_and_attached_resources(uow_factory, session_factory):
    earlier = make_generation(kind=GenerationKind.EDIT)
    foreign = make_resource(owner_id="someone-else")
    attached = make_resource(generation_id=earlier.id)
    await insert(session_factory, earlier, foreign, attached)
    submitter = JobSubmitter(uow_factory)

    for resource_ids, message in [
        ([foreign.id], "not owned"),
        ([uuid4()], "Unknown resource"),
        ([attached.id], "already attached"),
    ]:
        with pytest.raises(ValidationError, match=message):
            await submitter.submit(
                "user-1", image_request(kind=GenerationKind.EDIT, resource_ids=resource_ids)
            )

    assert [g.id for g in await all_generations(session_factory)] == [earlier.id]
    async with await uow_factory() as uow:
        reloaded = await uow.resources.get_by_id(foreign.id)
    assert reloaded.generation_id is None


@pytest.mark.asyncio
async def test_database_failure_is_persistence_error(uow_factory):
    class BrokenUoW:
        async def __aenter__(self):
            raise OperationalError("INSERT", {}, Exception("connection refused"))

        async def __aexit__(self, *exc):
            return False

    async def broken_factory():
        return BrokenUoW()

    dispatched = []
    submitter = JobSubmitter(broken_factory, dispatch=dispatched.append)

    with pytest.raises(PersistenceError):
        await submitter.submit("user-1", image_request())
    assert dispatched == []


@pytest.mark.asyncio
async def test_dispatch_failure_keeps_pending_row(uow_factory, session_factory):
    def failing_dispatch(generation_id):
        raise RuntimeError("worker unavailable")

    generation_id = await JobSubmitter(uow_factory, dispatch=failing_dispatch).submit(
        "user-1", image_request()
    )

    generation = await reload(session_factory, generation_id)
    assert generation.status == GenerationStatus.PENDING
