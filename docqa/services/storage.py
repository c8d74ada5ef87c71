"""
Object Storage
Blob storage for uploaded files, backed by a Supabase Storage bucket.
"""
import asyncio
import structlog
from supabase import Client

from docqa.errors import StorageError

logger = structlog.get_logger()


class ObjectStorage:
    """Path-addressed blob storage. No versioning guarantees."""

    def __init__(self, supabase: Client, bucket: str):
        self.supabase = supabase
        self.bucket = bucket

    def _bucket(self):
        return self.supabase.storage.from_(self.bucket)

    async def put(self, path: str, data: bytes, content_type: str) -> str:
        """
        Store bytes at ``path``, overwriting any existing object.

        Returns:
            The stored path
        """
        try:
            await asyncio.to_thread(
                self._bucket().upload,
                path=path,
                file=data,
                file_options={"content-type": content_type, "upsert": "true"},
            )
        except Exception as e:
            raise StorageError(f"Upload of '{path}' failed: {e}") from e

        logger.info("File saved in storage", path=path, size_bytes=len(data))
        return path

    async def delete(self, path: str) -> None:
        try:
            await asyncio.to_thread(self._bucket().remove, [path])
        except Exception as e:
            raise StorageError(f"Delete of '{path}' failed: {e}") from e
        logger.info("File removed from storage", path=path)

    def public_url(self, path: str) -> str:
        return self._bucket().get_public_url(path)
