"""Integration tests for generation and gallery API endpoints.

Tests the HTTP surface:
- POST /api/generations/images and /api/generations/videos
- GET /api/generations/{generation_id}
- GET /api/gallery
- Bearer authentication and the {"error": ...} body on failures
"""

from datetime import datetime, timedelta
from types import SimpleNamespace
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from atelier.api.dependencies import get_current_owner
from atelier.app import create_app
from atelier.models.generation import GenerationStatus
from atelier.models.resource import Resource
from atelier.workers.generation_worker import WorkerSignal
from conftest import insert, make_generation, reload


def fake_supabase(valid_tokens: dict[str, str]):
    """Supabase client stand-in whose auth.get_user knows a fixed set of tokens."""

    def get_user(token):
        if token not in valid_tokens:
            raise Exception("invalid JWT: token is expired")
        return SimpleNamespace(user=SimpleNamespace(id=valid_tokens[token]))

    return SimpleNamespace(auth=SimpleNamespace(get_user=get_user))


@pytest_asyncio.fixture
async def app(uow_factory, session_factory, settings):
    """Provide an app wired to the test database (lifespan is not run)."""
    app = create_app()
    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.uow_factory = uow_factory
    app.state.worker_signal = WorkerSignal()
    app.state.supabase = fake_supabase({"alice-token": "alice", "bob-token": "bob"})
    return app


@pytest_asyncio.fixture
async def test_client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


def auth(user: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {user}-token"}


@pytest.mark.asyncio
class TestSubmitEndpoints:
    async def test_submit_image_returns_202_and_wakes_worker(
        self, app, test_client, session_factory
    ):
        response = await test_client.post(
            "/api/generations/images",
            json={"prompt": "a lighthouse at dusk", "resolution": "2K", "variations": 4},
            headers=auth("alice"),
        )

        assert response.status_code == 202
        generation_id = response.json()["generation_id"]
        generation = await reload(session_factory, generation_id)
        assert generation.owner_id == "alice"
        assert generation.kind.value == "generate"
        assert generation.model_tier.value == "Pro"
        assert app.state.worker_signal.event.is_set()

    async def test_submit_with_resources_is_an_edit(self, test_client, session_factory):
        resource = Resource(owner_id="alice", storage_path="alice/cat.png", mime_type="image/png")
        await insert(session_factory, resource)

        response = await test_client.post(
            "/api/generations/images",
            json={"prompt": "give the cat a hat", "resource_ids": [str(resource.id)]},
            headers=auth("alice"),
        )

        assert response.status_code == 202
        generation = await reload(session_factory, response.json()["generation_id"])
        assert generation.kind.value == "edit"

    async def test_submit_video(self, test_client, session_factory):
        response = await test_client.post(
            "/api/generations/videos",
            json={"prompt": "waves at night", "resolution": "1080p", "aspect_ratio": "3:4"},
            headers=auth("alice"),
        )

        assert response.status_code == 202
        generation = await reload(session_factory, response.json()["generation_id"])
        assert generation.kind.value == "video"
        assert generation.aspect_ratio == "9:16"

    async def test_invalid_submission_is_400(self, test_client):
        response = await test_client.post(
            "/api/generations/images",
            json={"prompt": "   ", "variations": 1},
            headers=auth("alice"),
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Prompt cannot be empty"}

    async def test_malformed_body_is_400(self, test_client):
        response = await test_client.post(
            "/api/generations/images",
            json={"prompt": "ok", "variations": "many"},
            headers=auth("alice"),
        )

        assert response.status_code == 400
        assert "variations" in response.json()["error"]

    async def test_missing_token_is_401(self, test_client):
        response = await test_client.post(
            "/api/generations/images", json={"prompt": "a lighthouse at dusk"}
        )

        assert response.status_code == 401
        assert "error" in response.json()

    async def test_rejected_token_is_401(self, test_client):
        response = await test_client.post(
            "/api/generations/images",
            json={"prompt": "a lighthouse at dusk"},
            headers={"Authorization": "Bearer forged"},
        )

        assert response.status_code == 401


@pytest.mark.asyncio
class TestReadEndpoints:
    async def test_get_generation_is_owner_scoped(self, test_client, session_factory):
        generation = make_generation(owner_id="alice", status=GenerationStatus.SUCCESS)
        await insert(session_factory, generation)

        response = await test_client.get(
            f"/api/generations/{generation.id}", headers=auth("alice")
        )
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "success"
        assert body["result_urls"] == generation.result_urls

        other = await test_client.get(f"/api/generations/{generation.id}", headers=auth("bob"))
        assert other.status_code == 404
        assert other.json() == {"error": "Generation not found"}

    async def test_unknown_generation_is_404(self, test_client):
        response = await test_client.get(f"/api/generations/{uuid4()}", headers=auth("alice"))
        assert response.status_code == 404

    async def test_gallery_pages(self, test_client, session_factory):
        base = datetime(2026, 3, 1, 12, 0, 0)
        rows = [
            make_generation(
                owner_id="alice",
                status=GenerationStatus.SUCCESS,
                created_at=base + timedelta(minutes=i),
            )
            for i in range(10)
        ]
        await insert(session_factory, *rows)

        first = await test_client.get("/api/gallery", params={"limit": 8}, headers=auth("alice"))
        assert first.status_code == 200
        page = first.json()
        assert len(page["items"]) == 8
        assert page["has_more"] is True
        assert page["items"][0]["id"] == str(rows[-1].id)
        assert "resultUrls" in page["items"][0]

        second = await test_client.get(
            "/api/gallery",
            params={"limit": 8, "before": page["items"][-1]["timestamp"]},
            headers=auth("alice"),
        )
        assert [item["id"] for item in second.json()["items"]] == [
            str(rows[1].id),
            str(rows[0].id),
        ]
        assert second.json()["has_more"] is False

    async def test_gallery_uses_configured_page_size(self, app, test_client, session_factory):
        app.state.settings.gallery_page_size = 3
        await insert(
            session_factory,
            *[make_generation(owner_id="alice", status=GenerationStatus.SUCCESS) for _ in range(5)],
        )

        response = await test_client.get("/api/gallery", headers=auth("alice"))

        assert len(response.json()["items"]) == 3

    async def test_dependency_override_for_owner(self, app, test_client, session_factory):
        app.dependency_overrides[get_current_owner] = lambda: "carol"
        generation = make_generation(owner_id="carol")
        await insert(session_factory, generation)

        response = await test_client.get(f"/api/generations/{generation.id}")

        assert response.status_code == 200
        assert response.json()["status"] == "pending"
