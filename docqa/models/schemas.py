"""
Data models for the document Q&A pipeline.
"""
from datetime import datetime, timezone
from enum import Enum
from pydantic import BaseModel, Field
from typing import List, Optional


PDF_MIME_TYPE = "application/pdf"
TEXT_MIME_TYPE = "text/plain"
ALLOWED_MIME_TYPES = (PDF_MIME_TYPE, TEXT_MIME_TYPE)


class DocumentStatus(str, Enum):
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"


class Document(BaseModel):
    """A stored file and its extracted text, as kept in the documents table."""
    id: str
    name: str
    folder_id: str
    path: str            # Storage path
    size: int            # Bytes
    type: str            # MIME type
    content: str = ""    # Full extracted text
    status: DocumentStatus = DocumentStatus.PROCESSING
    uploaded_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class IncomingFile(BaseModel):
    """A file as received from the upload boundary."""
    name: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


class ChunkData(BaseModel):
    """Internal model for document chunks during processing."""
    page_number: int     # 1-based
    chunk_index: int     # Global within the document
    content: str


class ChunkMatch(BaseModel):
    """Model for search results returned from vector query."""
    content: str
    similarity: float
    document_id: str
    document_name: str
    page_number: Optional[int] = None
    chunk_index: int


class Citation(BaseModel):
    doc_name: str
    page: Optional[int] = None
    section: Optional[str] = None
    similarity: Optional[float] = None


class ChatRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ChatMessage(BaseModel):
    role: ChatRole
    content: str
    citations: Optional[List[Citation]] = None
    chunks: Optional[List[str]] = None


class ChatRequest(BaseModel):
    message: str
    folder_id: Optional[str] = None
    file_id: Optional[str] = None
    conversation_history: List[ChatMessage] = []


class ChatResponse(BaseModel):
    content: str
    citations: List[Citation] = []
    chunks: List[str] = []


class IngestedDocument(BaseModel):
    """A document that made it through ingestion, possibly degraded."""
    document: Document
    chunk_count: int = 0
    embedded_count: int = 0
    extraction_degraded: bool = False
    embedding_degraded: bool = False


class IngestFailure(BaseModel):
    file: str
    error: str


class IngestResult(BaseModel):
    succeeded: List[IngestedDocument] = []
    failed: List[IngestFailure] = []


class ProgressStage(str, Enum):
    STORED = "stored"
    EXTRACTED = "extracted"
    EMBEDDING = "embedding"
    DONE = "done"


class ProgressEvent(BaseModel):
    file_name: str
    stage: ProgressStage
    page: int = 0
    total_pages: int = 0
