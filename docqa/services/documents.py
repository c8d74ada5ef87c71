"""
Document Management
Listing and cascading deletion of ingested documents.
"""
from typing import List, Optional
import structlog

from docqa.errors import DocumentNotFoundError, StorageError
from docqa.models.schemas import Document
from docqa.services.document_repository import DocumentRepository
from docqa.services.storage import ObjectStorage
from docqa.services.vector_store import VectorStore

logger = structlog.get_logger()


class DocumentManager:
    def __init__(self, repository: DocumentRepository, storage: ObjectStorage, vector_store: VectorStore):
        self.repository = repository
        self.storage = storage
        self.vector_store = vector_store

    async def list_documents(self, folder_id: Optional[str] = None) -> List[Document]:
        return await self.repository.list_by_folder(folder_id)

    async def delete_document(self, document_id: str) -> None:
        """
        Delete a document with its chunk vectors and stored file.

        Vector and blob removal failures are logged and the row is deleted
        anyway; only a failed row delete is raised.
        """
        document = await self.repository.get(document_id)
        if document is None:
            raise DocumentNotFoundError(f"Document '{document_id}' not found")

        try:
            await self.vector_store.delete_document_vectors(document_id)
        except StorageError as e:
            logger.error("Error deleting document vectors", document_id=document_id, error=e.message)

        try:
            await self.storage.delete(document.path)
        except StorageError as e:
            logger.error("Error deleting from storage", path=document.path, error=e.message)

        await self.repository.delete(document_id)
