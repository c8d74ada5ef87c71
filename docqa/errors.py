"""
Error taxonomy for the ingestion and retrieval pipeline.

Adapters translate raw SDK failures into these classes at their boundary.
Each error carries an HTTP status, a stable code and a message that is safe
to show to an end user; the exception text itself holds the internal detail.
"""
from typing import Optional

from fastapi import status


class DocQAError(Exception):
    """Base application error with HTTP semantics."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "internal_error"
    user_message: str = "An unexpected error occurred. Please try again."

    def __init__(self, message: str, *, user_message: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        if user_message is not None:
            self.user_message = user_message


class ValidationError(DocQAError):
    """Missing or malformed request fields, disallowed file type."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_error"

    def __init__(self, message: str, *, user_message: Optional[str] = None) -> None:
        # Validation messages describe the caller's own input, so they are safe to echo.
        super().__init__(message, user_message=user_message or message)


class DocumentNotFoundError(DocQAError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"
    user_message = "File not found"


class ConfigurationError(DocQAError):
    """Invalid settings; raised at startup."""

    code = "configuration_error"


class ExtractionDegraded(DocQAError):
    """Extraction produced a placeholder instead of real text. Never leaves the extractor."""

    code = "extraction_degraded"


class EmbeddingError(DocQAError):
    code = "embedding_error"
    user_message = "Failed to generate embeddings"


class StorageError(DocQAError):
    """Object storage, record store or vector store operation failed."""

    code = "storage_error"
    user_message = "A storage operation failed. Please try again."


class VectorUpsertError(StorageError):
    """Upsert stopped part way; ``upserted`` vectors from earlier batches are in the index."""

    def __init__(self, message: str, *, upserted: int = 0, user_message: Optional[str] = None) -> None:
        super().__init__(message, user_message=user_message)
        self.upserted = upserted


class RetrievalError(DocQAError):
    code = "retrieval_error"
    user_message = "Failed to search document embeddings"


class GenerationError(DocQAError):
    code = "generation_error"
    user_message = "Failed to generate response. Please try again."
