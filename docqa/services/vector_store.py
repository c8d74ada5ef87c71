"""
Vector Store Service
Chunk vectors in Pinecone, scoped to folders by metadata filter.
"""
import asyncio
from typing import Any, List, Sequence, Tuple
import structlog

from docqa.errors import StorageError, VectorUpsertError
from docqa.models.schemas import ChunkData, ChunkMatch

logger = structlog.get_logger()


class VectorStore:
    """
    Chunk vector records in a Pinecone index.

    The index is expected to use the cosine metric, so query scores are
    cosine similarities. One namespace holds every folder; ``folder_id``
    metadata scopes searches and ``document_id`` metadata scopes deletes.
    """

    # Pinecone caps metadata at 40KB per vector
    MAX_CONTENT_CHARS = 8000
    UPSERT_BATCH_SIZE = 100

    def __init__(self, index: Any, namespace: str):
        self.index = index
        self.namespace = namespace

    @staticmethod
    def vector_id(document_id: str, chunk_index: int) -> str:
        return f"{document_id}:{chunk_index}"

    async def upsert_chunks(
        self,
        embedded: Sequence[Tuple[ChunkData, List[float]]],
        folder_id: str,
        document_id: str,
        document_name: str,
    ) -> int:
        """
        Store chunk vectors with their provenance metadata.

        Args:
            embedded: (chunk, vector) pairs
            folder_id: Folder the document belongs to
            document_id: Owning document
            document_name: Display name used in citations

        Returns:
            Number of vectors upserted

        Raises:
            VectorUpsertError: a batch failed; earlier batches stay in the
                index and are counted in ``upserted``
        """
        vectors = []
        for chunk, embedding in embedded:
            vectors.append({
                "id": self.vector_id(document_id, chunk.chunk_index),
                "values": embedding,
                "metadata": {
                    "folder_id": folder_id,
                    "document_id": document_id,
                    "document_name": document_name,
                    "page_number": chunk.page_number,
                    "chunk_index": chunk.chunk_index,
                    "content": chunk.content[:self.MAX_CONTENT_CHARS],
                },
            })

        total_upserted = 0
        try:
            for i in range(0, len(vectors), self.UPSERT_BATCH_SIZE):
                batch = vectors[i:i + self.UPSERT_BATCH_SIZE]
                await asyncio.to_thread(self.index.upsert, vectors=batch, namespace=self.namespace)
                total_upserted += len(batch)
        except Exception as e:
            raise VectorUpsertError(
                f"Vector upsert failed after {total_upserted} of {len(vectors)}: {e}",
                upserted=total_upserted,
            ) from e

        logger.info("Vectors upserted", document_id=document_id, total=total_upserted)
        return total_upserted

    async def search(
        self,
        query_embedding: List[float],
        folder_id: str,
        top_k: int,
    ) -> List[ChunkMatch]:
        """
        Nearest chunks to a query vector within one folder.

        Returns:
            Matches as scored by the index, unfiltered by threshold
        """
        try:
            results = await asyncio.to_thread(
                self.index.query,
                namespace=self.namespace,
                vector=query_embedding,
                filter={"folder_id": {"$eq": folder_id}},
                top_k=top_k,
                include_metadata=True,
            )
        except Exception as e:
            raise StorageError(f"Vector query failed: {e}") from e

        matches = []
        for match in results.matches:
            metadata = match.metadata or {}
            page_number = metadata.get("page_number")
            matches.append(ChunkMatch(
                content=metadata.get("content", ""),
                similarity=float(match.score),
                document_id=metadata.get("document_id", ""),
                document_name=metadata.get("document_name", ""),
                page_number=int(page_number) if page_number is not None else None,
                chunk_index=int(metadata.get("chunk_index", 0)),
            ))

        logger.info("Query complete", folder_id=folder_id, results=len(matches))
        return matches

    async def delete_document_vectors(self, document_id: str) -> None:
        """Delete all vectors for a specific document."""
        try:
            await asyncio.to_thread(
                self.index.delete,
                namespace=self.namespace,
                filter={"document_id": {"$eq": document_id}},
            )
        except Exception as e:
            raise StorageError(f"Vector delete for document '{document_id}' failed: {e}") from e

        logger.info("Document vectors deleted", document_id=document_id)
