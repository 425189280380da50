"""Replicate API client for image and video generation with error classification."""

import base64
from dataclasses import dataclass
from typing import Any, Optional, Sequence

import httpx
import replicate
from replicate.exceptions import ModelError, ReplicateException

from atelier.models.generation import ModelTier
from atelier.services.exceptions import StudioError, TransportError, UpstreamError

_TERMINAL_PREDICTION_STATES = ("succeeded", "failed", "canceled")


@dataclass(frozen=True)
class SourceImage:
    """Raw bytes of an input image together with its MIME type."""

    data: bytes
    mime_type: str

    def to_data_uri(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"


@dataclass(frozen=True)
class VideoOperation:
    """Snapshot of a long-running video prediction."""

    id: str
    done: bool
    output_url: Optional[str] = None
    error: Optional[str] = None


def classify_error(exception: Exception) -> StudioError:
    """Classify exception into the service taxonomy.

    Args:
        exception: Original exception from Replicate SDK or network layer

    Returns:
        TransportError or UpstreamError instance

    Classification rules:
        - Timeout / connection errors → TransportError
        - 429 (rate limit), 502/503 (gateway) → TransportError
        - "Requested entity was not found" → UpstreamError (API key / project mismatch)
        - Everything else (auth, content policy, model failure) → UpstreamError
    """
    error_message = str(exception)
    error_message_lower = error_message.lower()

    if isinstance(exception, (httpx.TimeoutException, TimeoutError)) or "timeout" in error_message_lower:
        return TransportError(f"Network timeout: {error_message}")

    if isinstance(exception, (httpx.TransportError, ConnectionError)):
        return TransportError(f"Connection error: {error_message}")

    if "429" in error_message or "rate limit" in error_message_lower:
        return TransportError(f"Rate limit exceeded: {error_message}")

    if (
        "502" in error_message
        or "503" in error_message
        or "service unavailable" in error_message_lower
    ):
        return TransportError(f"Service unavailable: {error_message}")

    if "requested entity was not found" in error_message_lower:
        return UpstreamError("API key mismatch or invalid project.")

    if (
        "401" in error_message
        or "403" in error_message
        or "unauthorized" in error_message_lower
        or "invalid api token" in error_message_lower
    ):
        return UpstreamError(f"Authentication failed: {error_message}")

    if (
        "content policy" in error_message_lower
        or "nsfw" in error_message_lower
        or "safety" in error_message_lower
    ):
        return UpstreamError(f"Content policy violation: {error_message}")

    return UpstreamError(f"Generation failed: {error_message}")


def _extract_url(output: Any) -> str:
    """Pull the first artifact URL out of a Replicate output (format varies by model)."""
    if isinstance(output, list) and len(output) > 0:
        return str(output[0])
    if isinstance(output, str) and output:
        return output
    if output is not None and hasattr(output, "url"):
        return str(output.url)
    raise UpstreamError(f"Unexpected output format from Replicate: {type(output).__name__}")


class ReplicateProvider:
    """Generation provider backed by Replicate-hosted models.

    Basic and Pro tiers map to two image models; video runs through one model
    as a prediction whose handle is polled by the worker.
    """

    def __init__(
        self,
        api_token: str,
        image_model_basic: str = "google/nano-banana",
        image_model_pro: str = "google/nano-banana-pro",
        video_model: str = "google/veo-3.1-fast",
        http_timeout: float = 120.0,
    ):
        """Initialize Replicate provider.

        Args:
            api_token: Replicate API token (from REPLICATE_API_TOKEN env var)
            image_model_basic: Model used for the Basic tier
            image_model_pro: Model used for the Pro tier (accepts a resolution)
            video_model: Model used for video predictions
            http_timeout: Timeout for artifact downloads, in seconds
        """
        self.api_token = api_token
        self.image_model_basic = image_model_basic
        self.image_model_pro = image_model_pro
        self.video_model = video_model
        self.http_timeout = http_timeout
        self.client = replicate.Client(api_token=api_token)

    def _require_token(self) -> None:
        if not self.api_token:
            raise UpstreamError("REPLICATE_API_TOKEN not configured")

    async def generate_image(
        self,
        prompt: str,
        model_tier: ModelTier,
        resolution: str,
        aspect_ratio: str,
        source_images: Sequence[SourceImage] = (),
    ) -> bytes:
        """Run one image prediction and return the artifact bytes.

        Args:
            prompt: Text prompt
            model_tier: Basic or Pro (Pro also receives the resolution)
            resolution: "1K", "2K" or "4K"
            aspect_ratio: Already normalized for the image family
            source_images: Images to edit; empty for plain generation

        Raises:
            UpstreamError: Model failed or returned no usable output
            TransportError: Network failure
        """
        self._require_token()

        is_pro = ModelTier(model_tier) is ModelTier.PRO
        model = self.image_model_pro if is_pro else self.image_model_basic

        model_input: dict[str, Any] = {
            "prompt": prompt,
            "aspect_ratio": aspect_ratio,
            "output_format": "png",
        }
        if is_pro:
            model_input["resolution"] = resolution
        if source_images:
            model_input["image_input"] = [image.to_data_uri() for image in source_images]

        try:
            output = await self.client.async_run(model, input=model_input, use_file_output=False)
        except (ModelError, ReplicateException, httpx.HTTPError, ConnectionError, TimeoutError) as e:
            raise classify_error(e) from e

        return await self.download(_extract_url(output))

    async def start_video(
        self,
        prompt: str,
        resolution: str,
        aspect_ratio: str,
        start_frame: Optional[SourceImage] = None,
    ) -> VideoOperation:
        """Create a video prediction and return its operation handle."""
        self._require_token()

        model_input: dict[str, Any] = {
            "prompt": prompt,
            "resolution": resolution,
            "aspect_ratio": aspect_ratio,
        }
        if start_frame is not None:
            model_input["image"] = start_frame.to_data_uri()

        try:
            prediction = await self.client.predictions.async_create(
                model=self.video_model, input=model_input
            )
        except (ReplicateException, httpx.HTTPError, ConnectionError, TimeoutError) as e:
            raise classify_error(e) from e

        return self._to_operation(prediction)

    async def get_video_operation(self, operation: VideoOperation) -> VideoOperation:
        """Refresh a video operation handle."""
        try:
            prediction = await self.client.predictions.async_get(operation.id)
        except (ReplicateException, httpx.HTTPError, ConnectionError, TimeoutError) as e:
            raise classify_error(e) from e

        return self._to_operation(prediction)

    def _to_operation(self, prediction: Any) -> VideoOperation:
        done = prediction.status in _TERMINAL_PREDICTION_STATES
        output_url = None
        if prediction.status == "succeeded" and prediction.output:
            output_url = _extract_url(prediction.output)
        error = None
        if prediction.status in ("failed", "canceled"):
            error = str(prediction.error or f"Prediction {prediction.status}")
        return VideoOperation(id=prediction.id, done=done, output_url=output_url, error=error)

    async def download(self, url: str) -> bytes:
        """Download an artifact produced by the model.

        Raises:
            TransportError: Timeout, connection failure, or 5xx response
            UpstreamError: Non-retryable 4xx response
        """
        try:
            async with httpx.AsyncClient(timeout=self.http_timeout, follow_redirects=True) as client:
                response = await client.get(url)
        except httpx.TimeoutException as e:
            raise TransportError(f"Download timeout after {self.http_timeout}s: {e}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"Download failed: {e}") from e

        if response.status_code >= 500:
            raise TransportError(
                f"Failed to download artifact ({response.status_code}): {response.reason_phrase}"
            )
        if response.status_code >= 400:
            raise UpstreamError(
                f"Failed to download artifact ({response.status_code}): {response.reason_phrase}"
            )
        return response.content
