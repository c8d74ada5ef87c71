"""
Document Repository
Document records in the Supabase ``documents`` table.
"""
import asyncio
from typing import List, Optional
import structlog
from supabase import Client

from docqa.errors import StorageError
from docqa.models.schemas import Document, DocumentStatus

logger = structlog.get_logger()


class DocumentRepository:
    """CRUD over document rows. Every failure surfaces as ``StorageError``."""

    TABLE = "documents"

    def __init__(self, supabase: Client):
        self.supabase = supabase

    def _table(self):
        return self.supabase.table(self.TABLE)

    async def insert(
        self,
        *,
        name: str,
        folder_id: str,
        path: str,
        size: int,
        mime_type: str,
        content: str,
        status: DocumentStatus = DocumentStatus.PROCESSING,
    ) -> Document:
        row = {
            "name": name,
            "folder_id": folder_id,
            "path": path,
            "size": size,
            "type": mime_type,
            "content": content,
            "status": status.value,
        }
        try:
            result = await asyncio.to_thread(lambda: self._table().insert(row).execute())
        except Exception as e:
            raise StorageError(f"Insert of document '{name}' failed: {e}") from e

        if not result.data:
            raise StorageError(f"Insert of document '{name}' returned no row")

        document = Document(**result.data[0])
        logger.info("Document record created", document_id=document.id, name=name)
        return document

    async def get(self, document_id: str) -> Optional[Document]:
        try:
            result = await asyncio.to_thread(
                lambda: self._table().select("*").eq("id", document_id).execute()
            )
        except Exception as e:
            raise StorageError(f"Lookup of document '{document_id}' failed: {e}") from e

        if not result.data:
            return None
        return Document(**result.data[0])

    async def list_by_folder(self, folder_id: Optional[str] = None) -> List[Document]:
        """List documents, newest first, optionally scoped to a folder."""
        def _query():
            query = self._table().select("*").order("uploaded_at", desc=True)
            if folder_id:
                query = query.eq("folder_id", folder_id)
            return query.execute()

        try:
            result = await asyncio.to_thread(_query)
        except Exception as e:
            raise StorageError(f"Listing documents failed: {e}") from e

        return [Document(**row) for row in result.data or []]

    async def update_status(self, document_id: str, status: DocumentStatus) -> None:
        try:
            await asyncio.to_thread(
                lambda: self._table().update({"status": status.value}).eq("id", document_id).execute()
            )
        except Exception as e:
            raise StorageError(f"Status update of document '{document_id}' failed: {e}") from e

    async def delete(self, document_id: str) -> None:
        try:
            await asyncio.to_thread(
                lambda: self._table().delete().eq("id", document_id).execute()
            )
        except Exception as e:
            raise StorageError(f"Delete of document '{document_id}' failed: {e}") from e
        logger.info("Document record deleted", document_id=document_id)
