"""
Shared Test Fixtures for the Document Q&A Pipeline

This file contains:
- In-memory doubles for storage, the documents table, the vector index
  and the OpenAI-backed adapters
- Settings and service container fixtures
- FastAPI TestClient setup
- Test data fixtures
"""
import hashlib
import math
import os
import re
import sys
import uuid
from typing import Generator, List, Optional

import pytest
from fastapi.testclient import TestClient

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from docqa.config import Settings
from docqa.dependencies import build_services
from docqa.errors import EmbeddingError, GenerationError, StorageError
from docqa.main import create_app
from docqa.models.schemas import ChunkMatch, Document, DocumentStatus, IncomingFile


# ═══════════════════════════════════════════════════════════════
# IN-MEMORY DOUBLES
# ═══════════════════════════════════════════════════════════════

class InMemoryStorage:
    """Stands in for ObjectStorage."""

    def __init__(self):
        self.objects = {}
        self.deleted = []
        self.fail_put = False
        self.fail_delete = False

    async def put(self, path: str, data: bytes, content_type: str) -> str:
        if self.fail_put:
            raise StorageError(f"Upload of '{path}' failed: bucket unavailable")
        self.objects[path] = (data, content_type)
        return path

    async def delete(self, path: str) -> None:
        if self.fail_delete:
            raise StorageError(f"Delete of '{path}' failed: bucket unavailable")
        self.objects.pop(path, None)
        self.deleted.append(path)

    def public_url(self, path: str) -> str:
        return f"https://storage.test/{path}"


class InMemoryRepository:
    """Stands in for DocumentRepository."""

    def __init__(self):
        self.rows = {}
        self.fail_insert = False
        self.fail_update = False

    async def insert(self, *, name, folder_id, path, size, mime_type, content, status=DocumentStatus.PROCESSING):
        if self.fail_insert:
            raise StorageError(f"Insert of document '{name}' failed: database error")
        document = Document(
            id=str(uuid.uuid4()),
            name=name,
            folder_id=folder_id,
            path=path,
            size=size,
            type=mime_type,
            content=content,
            status=status,
        )
        self.rows[document.id] = document
        return document

    async def get(self, document_id: str) -> Optional[Document]:
        return self.rows.get(document_id)

    async def list_by_folder(self, folder_id: Optional[str] = None) -> List[Document]:
        docs = [d for d in self.rows.values() if folder_id is None or d.folder_id == folder_id]
        return sorted(docs, key=lambda d: d.uploaded_at, reverse=True)

    async def update_status(self, document_id: str, status: DocumentStatus) -> None:
        if self.fail_update:
            raise StorageError(f"Status update of document '{document_id}' failed")
        self.rows[document_id] = self.rows[document_id].model_copy(update={"status": status})

    async def delete(self, document_id: str) -> None:
        self.rows.pop(document_id, None)


def _cosine(a: List[float], b: List[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class InMemoryVectorStore:
    """Stands in for VectorStore with exact cosine search."""

    def __init__(self):
        self.records = []
        self.fail_upsert = False
        self.fail_delete = False

    async def upsert_chunks(self, embedded, folder_id, document_id, document_name) -> int:
        if self.fail_upsert:
            raise StorageError("Vector upsert failed: index unavailable")
        for chunk, vector in embedded:
            self.records.append({
                "folder_id": folder_id,
                "document_id": document_id,
                "document_name": document_name,
                "page_number": chunk.page_number,
                "chunk_index": chunk.chunk_index,
                "content": chunk.content,
                "vector": vector,
            })
        return len(embedded)

    async def search(self, query_embedding, folder_id, top_k) -> List[ChunkMatch]:
        scored = [
            ChunkMatch(
                content=r["content"],
                similarity=_cosine(query_embedding, r["vector"]),
                document_id=r["document_id"],
                document_name=r["document_name"],
                page_number=r["page_number"],
                chunk_index=r["chunk_index"],
            )
            for r in self.records
            if r["folder_id"] == folder_id
        ]
        scored.sort(key=lambda m: -m.similarity)
        return scored[:top_k]

    async def delete_document_vectors(self, document_id: str) -> None:
        if self.fail_delete:
            raise StorageError(f"Vector delete for document '{document_id}' failed")
        self.records = [r for r in self.records if r["document_id"] != document_id]


class HashingEmbedder:
    """Deterministic bag-of-words embedder; shared words mean higher cosine."""

    DIMENSIONS = 256

    def __init__(self):
        self.calls = []
        self.fail_all = False
        self.fail_texts = set()

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.fail_all or text in self.fail_texts:
            raise EmbeddingError("Embedding request failed: rate limited")
        vector = [0.0] * self.DIMENSIONS
        for token in re.findall(r"[a-z]+", text.lower()):
            bucket = int(hashlib.md5(token.encode()).hexdigest(), 16) % self.DIMENSIONS
            vector[bucket] += 1.0
        return vector


class RecordingGenerator:
    """Stands in for GenerationService."""

    def __init__(self, answer: str = "The sky is blue, according to the document."):
        self.answer = answer
        self.prompts = []
        self.fail = False

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.fail:
            raise GenerationError("Generation request failed: upstream 503")
        return self.answer


# ═══════════════════════════════════════════════════════════════
# DOUBLE FIXTURES
# ═══════════════════════════════════════════════════════════════

@pytest.fixture
def fake_storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def fake_repository() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def fake_vector_store() -> InMemoryVectorStore:
    return InMemoryVectorStore()


@pytest.fixture
def fake_embedder() -> HashingEmbedder:
    return HashingEmbedder()


@pytest.fixture
def fake_generator() -> RecordingGenerator:
    return RecordingGenerator()


# ═══════════════════════════════════════════════════════════════
# SETTINGS & APP FIXTURES
# ═══════════════════════════════════════════════════════════════

@pytest.fixture
def settings() -> Settings:
    """Settings with small chunks and no embedding retries."""
    return Settings(
        _env_file=None,
        openai_api_key="test-openai-key",
        pinecone_api_key="test-pinecone-key",
        supabase_url="https://test.supabase.co",
        supabase_service_key="test-service-key",
        environment="development",
        chunk_size=20,
        chunk_overlap=5,
        embedding_max_attempts=1,
    )


@pytest.fixture
def services(settings, fake_storage, fake_repository, fake_vector_store, fake_embedder, fake_generator):
    return build_services(
        settings,
        storage=fake_storage,
        repository=fake_repository,
        vector_store=fake_vector_store,
        embedder=fake_embedder,
        generator=fake_generator,
    )


@pytest.fixture
def client(services) -> Generator[TestClient, None, None]:
    """Synchronous FastAPI test client wired to the in-memory doubles."""
    with TestClient(create_app(services=services)) as c:
        yield c


# ═══════════════════════════════════════════════════════════════
# TEST DATA FIXTURES
# ═══════════════════════════════════════════════════════════════

@pytest.fixture
def sample_folder_id() -> str:
    return "F1"


@pytest.fixture
def sky_text() -> str:
    return "The sky is blue. Grass is green."


@pytest.fixture
def sky_file(sky_text) -> IncomingFile:
    return IncomingFile(name="colors.txt", content_type="text/plain", data=sky_text.encode())


@pytest.fixture
def sample_pdf_bytes() -> bytes:
    """Minimal valid PDF bytes for testing."""
    return b"""%PDF-1.4
1 0 obj << /Type /Catalog /Pages 2 0 R >> endobj
2 0 obj << /Type /Pages /Kids [3 0 R] /Count 1 >> endobj
3 0 obj << /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] >> endobj
xref
0 4
0000000000 65535 f
0000000009 00000 n
0000000058 00000 n
0000000115 00000 n
trailer << /Size 4 /Root 1 0 R >>
startxref
196
%%EOF"""


@pytest.fixture
def corrupted_pdf_bytes() -> bytes:
    """Invalid/corrupted PDF bytes."""
    return b"This is not a valid PDF file content"
