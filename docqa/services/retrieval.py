"""
Retrieval Engine
Embeds a question and finds the most similar chunks within a folder.
"""
from typing import List, Optional
import structlog

from docqa.errors import EmbeddingError, RetrievalError, StorageError, ValidationError
from docqa.models.schemas import ChunkMatch
from docqa.services.embedding_service import EmbeddingService
from docqa.services.vector_store import VectorStore

logger = structlog.get_logger()


class RetrievalEngine:
    """
    Folder-scoped similarity search.

    Unlike ingestion there is no degraded path here: if the question cannot
    be embedded or the index cannot be searched the request fails, so an
    unanswerable question never comes back with unrelated chunks.
    """

    def __init__(
        self,
        embedder: EmbeddingService,
        vector_store: VectorStore,
        *,
        top_k: int = 5,
        similarity_threshold: float = 0.1,
        candidate_factor: int = 2,
    ):
        self.embedder = embedder
        self.vector_store = vector_store
        self.top_k = top_k
        self.similarity_threshold = similarity_threshold
        self.candidate_factor = candidate_factor

    async def retrieve(
        self,
        query: str,
        folder_id: str,
        k: Optional[int] = None,
        similarity_threshold: Optional[float] = None,
    ) -> List[ChunkMatch]:
        """
        Top-k chunks scoring at least the threshold, best first.

        Ties on similarity are broken by ascending chunk index. The
        tie-break only sees the ``k * candidate_factor`` candidates the
        index returns; if more chunks than that share the cut-off score,
        the index decides which of them are candidates. An empty list is a
        normal outcome.

        Raises:
            ValidationError: blank query, missing folder or k < 1
            RetrievalError: query embedding or index search failed
        """
        k = self.top_k if k is None else k
        threshold = self.similarity_threshold if similarity_threshold is None else similarity_threshold

        if not query or not query.strip():
            raise ValidationError("Valid message is required")
        if not folder_id:
            raise ValidationError("Folder ID is required")
        if k < 1:
            raise ValidationError(f"k must be at least 1, got {k}")

        try:
            query_embedding = await self.embedder.embed(query)
        except EmbeddingError as e:
            raise RetrievalError(f"Query embedding failed: {e.message}", user_message="Failed to generate query embedding") from e

        try:
            candidates = await self.vector_store.search(
                query_embedding,
                folder_id=folder_id,
                top_k=k * self.candidate_factor,
            )
        except StorageError as e:
            raise RetrievalError(f"Similarity search failed: {e.message}") from e

        eligible = [m for m in candidates if m.similarity >= threshold]
        eligible.sort(key=lambda m: (-m.similarity, m.chunk_index))
        matches = eligible[:k]

        logger.info(
            "Retrieval complete",
            folder_id=folder_id,
            candidates=len(candidates),
            matches=len(matches),
            similarities=[round(m.similarity, 3) for m in matches],
        )
        return matches
