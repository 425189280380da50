"""Async HTTP client for the studio API."""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

import httpx

from atelier.api.schemas import GenerationRead, SubmissionResponse
from atelier.models.generation import ModelTier
from atelier.services.exceptions import StudioError, TransportError
from atelier.services.gallery import GalleryPage


class StudioAPIError(StudioError):
    """Non-2xx response from the studio API."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code


class StudioClient:
    """Thin client over the studio HTTP API.

    Example:
        async with StudioClient("https://studio.example.com", access_token) as client:
            generation_id = await client.submit_images("a lighthouse at dusk", variations=4)
            generation = await client.get_generation(generation_id)
    """

    def __init__(
        self,
        base_url: str,
        access_token: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize client.

        Args:
            base_url: API origin, e.g. "http://localhost:8000"
            access_token: Supabase access token sent as Bearer credentials
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (ASGITransport in tests)
        """
        self._http = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"Authorization": f"Bearer {access_token}"},
            transport=transport,
        )

    async def __aenter__(self) -> "StudioClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self._http.aclose()

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        """Send a request and return the decoded JSON body.

        Raises:
            TransportError: Network failure or timeout
            StudioAPIError: Any non-2xx response, whatever the body shape
        """
        try:
            response = await self._http.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise TransportError(f"Request timeout: {e}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"Network error: {e}") from e

        if not response.is_success:
            message = f"Request failed with status {response.status_code}"
            try:
                body = response.json()
            except ValueError:
                body = None
            if isinstance(body, dict) and isinstance(body.get("error"), str):
                message = body["error"]
            raise StudioAPIError(response.status_code, message)

        return response.json()

    async def submit_images(
        self,
        prompt: str,
        resolution: str = "1K",
        aspect_ratio: str = "1:1",
        variations: int = 1,
        model_tier: Optional[ModelTier] = None,
        resource_ids: Optional[list[UUID]] = None,
    ) -> UUID:
        """Submit an image job (edit when resource_ids are given). Returns the generation id."""
        payload: dict[str, Any] = {
            "prompt": prompt,
            "resolution": resolution,
            "aspect_ratio": aspect_ratio,
            "variations": variations,
            "resource_ids": [str(rid) for rid in resource_ids or []],
        }
        if model_tier is not None:
            payload["model_tier"] = ModelTier(model_tier).value

        data = await self._request("POST", "/api/generations/images", json=payload)
        return SubmissionResponse.model_validate(data).generation_id

    async def submit_video(
        self,
        prompt: str,
        resolution: str = "720p",
        aspect_ratio: str = "16:9",
        resource_id: Optional[UUID] = None,
    ) -> UUID:
        """Submit a video job. Returns the generation id."""
        payload: dict[str, Any] = {
            "prompt": prompt,
            "resolution": resolution,
            "aspect_ratio": aspect_ratio,
        }
        if resource_id is not None:
            payload["resource_id"] = str(resource_id)

        data = await self._request("POST", "/api/generations/videos", json=payload)
        return SubmissionResponse.model_validate(data).generation_id

    async def get_generation(self, generation_id: UUID) -> GenerationRead:
        """Point read of one generation (the poller's fetch function)."""
        data = await self._request("GET", f"/api/generations/{generation_id}")
        return GenerationRead.model_validate(data)

    async def list_gallery(self, limit: int = 8, before: Optional[datetime] = None) -> GalleryPage:
        """Fetch one gallery page, newest first."""
        params: dict[str, Any] = {"limit": limit}
        if before is not None:
            params["before"] = before.isoformat()
        data = await self._request("GET", "/api/gallery", params=params)
        return GalleryPage.model_validate(data)
