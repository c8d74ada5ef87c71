"""
Embedding Service
Generates fixed-size vector embeddings using OpenAI's embedding models.
"""
from typing import List
import structlog
from openai import AsyncOpenAI, OpenAIError

from docqa.errors import EmbeddingError

logger = structlog.get_logger()


class EmbeddingService:
    """
    Maps text to a fixed-dimension vector.

    Shared by the ingestion path (one call per chunk) and the query path
    (one call per question) so both land in the same vector space. Failures
    of any kind surface as ``EmbeddingError``; callers own the retry policy.
    """

    # Maximum tokens per request (model limit)
    MAX_TOKENS_PER_REQUEST = 8191

    def __init__(self, client: AsyncOpenAI, model: str, dimensions: int, timeout: float = 30.0):
        self.client = client
        self.model = model
        self.dimensions = dimensions
        self.timeout = timeout

    async def embed(self, text: str) -> List[float]:
        """
        Generate embedding for a single text.

        Args:
            text: Text to embed

        Returns:
            Embedding vector of ``dimensions`` floats

        Raises:
            EmbeddingError: upstream failure, timeout or invalid vector
        """
        # Truncate if too long (rough estimate: 4 chars per token)
        max_chars = self.MAX_TOKENS_PER_REQUEST * 4
        if len(text) > max_chars:
            logger.warning("Text truncated for embedding", original_length=len(text))
            text = text[:max_chars]

        try:
            response = await self.client.embeddings.create(
                model=self.model,
                input=text,
                dimensions=self.dimensions,
                timeout=self.timeout,
            )
        except OpenAIError as e:
            raise EmbeddingError(f"Embedding request failed: {e}") from e

        if not response.data:
            raise EmbeddingError("Embedding response contained no data")

        vector = response.data[0].embedding
        if not vector or len(vector) != self.dimensions:
            raise EmbeddingError(
                f"Invalid embedding: expected {self.dimensions} dimensions, "
                f"got {len(vector) if vector else 0}"
            )

        return list(vector)
