"""Supabase Storage client for source resources and generated artifacts."""

import asyncio
from functools import lru_cache
from uuid import UUID

from supabase import Client, create_client

from atelier.services.exceptions import StorageError


class SupabaseClientError(Exception):
    """Raised when the Supabase client cannot be initialized."""

    pass


@lru_cache(maxsize=4)
def get_supabase_admin_client(supabase_url: str, service_key: str) -> Client:
    """Get Supabase client with service role key (admin access).

    Use this for background workers and token verification. It bypasses
    Row Level Security, so it must only run server-side.
    """
    if not supabase_url:
        raise SupabaseClientError(
            "SUPABASE_URL is not configured. Set it in your .env file or environment variables."
        )
    if not service_key:
        raise SupabaseClientError(
            "SUPABASE_SERVICE_KEY is not configured. "
            "Set it in your .env file or environment variables."
        )
    return create_client(supabase_url, service_key)


def artifact_path(owner_id: str, generation_id: UUID, slot: int, is_video: bool) -> str:
    """Storage path for one result artifact, namespaced by owner and generation.

    Examples:
        images/<owner>/<generation>/0.png
        videos/<owner>/<generation>/output.mp4
    """
    if is_video:
        return f"videos/{owner_id}/{generation_id}/output.mp4"
    return f"images/{owner_id}/{generation_id}/{slot}.png"


class SupabaseStorage:
    """Object storage adapter over Supabase Storage buckets.

    The supabase SDK is synchronous, so every call runs in a worker thread.
    """

    def __init__(self, client: Client, assets_bucket: str = "assets", resources_bucket: str = "resources"):
        """Initialize storage adapter.

        Args:
            client: Supabase client with service role key
            assets_bucket: Public bucket receiving generated artifacts
            resources_bucket: Bucket holding user uploads
        """
        self.client = client
        self.assets_bucket = assets_bucket
        self.resources_bucket = resources_bucket

    async def download_resource(self, storage_path: str) -> bytes:
        """Download an uploaded resource's bytes.

        Raises:
            StorageError: If the object is missing or the request fails
        """

        def _download() -> bytes:
            return self.client.storage.from_(self.resources_bucket).download(storage_path)

        try:
            return await asyncio.to_thread(_download)
        except Exception as e:
            raise StorageError(f"Failed to download resource {storage_path}: {e}") from e

    async def upload_artifact(self, path: str, data: bytes, content_type: str) -> str:
        """Upload a generated artifact and return its public URL.

        Raises:
            StorageError: If the upload fails
        """

        def _upload() -> str:
            bucket = self.client.storage.from_(self.assets_bucket)
            bucket.upload(path, data, file_options={"content-type": content_type})
            return bucket.get_public_url(path)

        try:
            return await asyncio.to_thread(_upload)
        except Exception as e:
            raise StorageError(f"Failed to upload {path}: {e}") from e
