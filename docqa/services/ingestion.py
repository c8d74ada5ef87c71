"""
Ingestion Orchestrator
Drives store -> extract -> persist -> chunk -> embed for a batch of uploads.

Per file:
    received -> validated -> stored -> extracted -> persisted (processing)
             -> embedding -> ready

Every file reports its own outcome; one file failing never aborts its
siblings. Once the document row exists, embedding is best-effort: chunks
that cannot be embedded are skipped and the document is still ``ready``.
A file reported as failed leaves nothing behind: if it fails after its row
exists, its vectors, stored object and row are deleted.
"""
import asyncio
import inspect
import re
import time
import uuid
from collections import OrderedDict
from typing import Awaitable, Callable, List, Optional, Sequence, Union
import structlog
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from docqa.errors import DocQAError, EmbeddingError, StorageError, ValidationError, VectorUpsertError
from docqa.models.schemas import (
    ALLOWED_MIME_TYPES,
    ChunkData,
    Document,
    DocumentStatus,
    IncomingFile,
    IngestedDocument,
    IngestFailure,
    IngestResult,
    ProgressEvent,
    ProgressStage,
)
from docqa.services.chunking_service import ChunkingService
from docqa.services.document_repository import DocumentRepository
from docqa.services.embedding_service import EmbeddingService
from docqa.services.storage import ObjectStorage
from docqa.services.text_extractor import TextExtractor, is_degraded
from docqa.services.vector_store import VectorStore

logger = structlog.get_logger()

ProgressCallback = Callable[[ProgressEvent], Union[None, Awaitable[None]]]

UPLOAD_PREFIX = "uploads"


def normalize_mime_type(content_type: Optional[str]) -> str:
    """``text/plain; charset=utf-8`` -> ``text/plain``."""
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def sanitize_filename(name: str) -> str:
    return re.sub(r"[^a-zA-Z0-9.-]", "_", name)


class IngestionOrchestrator:
    """Ingests uploaded files into a folder."""

    def __init__(
        self,
        storage: ObjectStorage,
        repository: DocumentRepository,
        extractor: TextExtractor,
        chunker: ChunkingService,
        embedder: EmbeddingService,
        vector_store: VectorStore,
        *,
        ingestion_concurrency: int = 2,
        embedding_concurrency: int = 4,
        embedding_max_attempts: int = 3,
        embedding_retry_wait=None,
    ):
        self.storage = storage
        self.repository = repository
        self.extractor = extractor
        self.chunker = chunker
        self.embedder = embedder
        self.vector_store = vector_store
        self.ingestion_concurrency = ingestion_concurrency
        self.embedding_concurrency = embedding_concurrency
        self.embedding_max_attempts = embedding_max_attempts
        self.embedding_retry_wait = embedding_retry_wait or wait_exponential(multiplier=1, min=1, max=8)

    # ─────────────────────────────────────────────────────────────
    # Batch
    # ─────────────────────────────────────────────────────────────

    async def ingest(
        self,
        folder_id: Optional[str],
        files: Sequence[IncomingFile],
        on_progress: Optional[ProgressCallback] = None,
    ) -> IngestResult:
        """
        Ingest a batch of files into a folder.

        Args:
            folder_id: Target folder
            files: Uploaded files
            on_progress: Optional callback (sync or async) for progress events

        Returns:
            IngestResult with per-file successes and failures, in input order

        Raises:
            ValidationError: folder_id missing or no files given
        """
        if not folder_id or not folder_id.strip():
            raise ValidationError("Folder ID is required")
        if not files:
            raise ValidationError("No files provided")

        logger.info("Stage: Starting batch ingestion", folder_id=folder_id, file_count=len(files))

        semaphore = asyncio.Semaphore(self.ingestion_concurrency)

        async def _bounded(file: IncomingFile):
            async with semaphore:
                return await self._ingest_file(folder_id, file, on_progress)

        outcomes = await asyncio.gather(*(_bounded(f) for f in files))

        result = IngestResult()
        for outcome in outcomes:
            if isinstance(outcome, IngestFailure):
                result.failed.append(outcome)
            else:
                result.succeeded.append(outcome)

        logger.info(
            "Stage: Batch ingestion finished",
            folder_id=folder_id,
            succeeded=len(result.succeeded),
            failed=len(result.failed),
        )
        return result

    # ─────────────────────────────────────────────────────────────
    # Single file
    # ─────────────────────────────────────────────────────────────

    async def _ingest_file(
        self,
        folder_id: str,
        file: IncomingFile,
        on_progress: Optional[ProgressCallback],
    ) -> Union[IngestedDocument, IngestFailure]:
        file_name = file.name or "unknown"
        log = logger.bind(file_name=file_name, folder_id=folder_id)

        try:
            mime_type = self._validate(file)

            path = self.storage_path(folder_id, file.name)
            await self.storage.put(path, file.data, mime_type)
            await self._notify(on_progress, ProgressEvent(file_name=file_name, stage=ProgressStage.STORED))

            pages = await asyncio.to_thread(self.extractor.extract, file.data, mime_type)
            degraded = is_degraded(pages)
            await self._notify(on_progress, ProgressEvent(
                file_name=file_name,
                stage=ProgressStage.EXTRACTED,
                total_pages=len(pages),
            ))

            document = await self._persist(folder_id, file, mime_type, path, pages, log)

            try:
                ingested = await self._embed_document(document, pages, degraded, on_progress, log)
                await self.repository.update_status(document.id, DocumentStatus.READY)
            except Exception:
                log.error("Could not finish document, discarding it", document_id=document.id)
                await self._discard(document, log)
                raise

            ingested.document = document.model_copy(update={"status": DocumentStatus.READY})
            await self._notify(on_progress, ProgressEvent(
                file_name=file_name,
                stage=ProgressStage.DONE,
                page=len(pages),
                total_pages=len(pages),
            ))

            log.info(
                "Stage: File ingested",
                document_id=document.id,
                chunk_count=ingested.chunk_count,
                embedded_count=ingested.embedded_count,
                extraction_degraded=ingested.extraction_degraded,
                embedding_degraded=ingested.embedding_degraded,
            )
            return ingested

        except DocQAError as e:
            log.warning("Stage: File ingestion failed", error=e.message)
            return IngestFailure(file=file_name, error=e.user_message)
        except Exception:
            log.exception("Stage: Unexpected error during file ingestion")
            return IngestFailure(file=file_name, error="Unknown error occurred")

    def _validate(self, file: IncomingFile) -> str:
        if not file.name:
            raise ValidationError("File name is required")
        mime_type = normalize_mime_type(file.content_type)
        if mime_type not in ALLOWED_MIME_TYPES:
            raise ValidationError("Only PDF and TXT files are allowed")
        return mime_type

    @staticmethod
    def storage_path(folder_id: str, file_name: str) -> str:
        timestamp = int(time.time() * 1000)
        return f"{UPLOAD_PREFIX}/{folder_id}/{timestamp}_{uuid.uuid4().hex[:8]}_{sanitize_filename(file_name)}"

    async def _persist(
        self,
        folder_id: str,
        file: IncomingFile,
        mime_type: str,
        path: str,
        pages: List[str],
        log,
    ) -> Document:
        try:
            return await self.repository.insert(
                name=file.name,
                folder_id=folder_id,
                path=path,
                size=file.size,
                mime_type=mime_type,
                content="\n\n".join(pages),
                status=DocumentStatus.PROCESSING,
            )
        except StorageError:
            # No transaction spans storage and the table: undo the upload by hand.
            try:
                await self.storage.delete(path)
            except StorageError as cleanup_error:
                log.error("Compensating delete failed, object orphaned", path=path, error=cleanup_error.message)
            raise

    async def _discard(self, document: Document, log) -> None:
        """Remove everything a failed file left behind: vectors, object, row."""
        steps = (
            ("vectors", self.vector_store.delete_document_vectors, document.id),
            ("object", self.storage.delete, document.path),
            ("row", self.repository.delete, document.id),
        )
        for what, delete, key in steps:
            try:
                await delete(key)
            except StorageError as e:
                log.error("Compensating delete failed", target=what, document_id=document.id, error=e.message)

    # ─────────────────────────────────────────────────────────────
    # Embedding (best-effort)
    # ─────────────────────────────────────────────────────────────

    async def _embed_document(
        self,
        document: Document,
        pages: List[str],
        degraded: bool,
        on_progress: Optional[ProgressCallback],
        log,
    ) -> IngestedDocument:
        chunks = [] if degraded else self.chunker.chunk(pages)
        if not chunks:
            if degraded:
                log.warning("Extraction degraded, no chunks produced", document_id=document.id)
            return IngestedDocument(document=document, extraction_degraded=degraded)

        by_page = OrderedDict()
        for chunk in chunks:
            by_page.setdefault(chunk.page_number, []).append(chunk)

        log.info("Stage: Generating vector embeddings", chunk_count=len(chunks), page_count=len(by_page))

        semaphore = asyncio.Semaphore(self.embedding_concurrency)
        embedded = []
        for page_number, page_chunks in by_page.items():
            vectors = await asyncio.gather(*(self._embed_chunk(c, semaphore, log) for c in page_chunks))
            embedded.extend((c, v) for c, v in zip(page_chunks, vectors) if v is not None)
            await self._notify(on_progress, ProgressEvent(
                file_name=document.name,
                stage=ProgressStage.EMBEDDING,
                page=page_number,
                total_pages=len(pages),
            ))

        stored = 0
        if embedded:
            try:
                stored = await self.vector_store.upsert_chunks(
                    embedded,
                    folder_id=document.folder_id,
                    document_id=document.id,
                    document_name=document.name,
                )
            except VectorUpsertError as e:
                stored = e.upserted
                log.warning("Vector upsert stopped part way", upserted=stored, error=e.message)
            except StorageError as e:
                log.warning("Vector upsert failed, document kept without embeddings", error=e.message)

        if stored < len(chunks):
            log.warning("Embedding degraded", embedded=stored, chunk_count=len(chunks))

        return IngestedDocument(
            document=document,
            chunk_count=len(chunks),
            embedded_count=stored,
            embedding_degraded=stored < len(chunks),
        )

    async def _embed_chunk(self, chunk: ChunkData, semaphore: asyncio.Semaphore, log) -> Optional[List[float]]:
        async with semaphore:
            try:
                async for attempt in AsyncRetrying(
                    stop=stop_after_attempt(self.embedding_max_attempts),
                    wait=self.embedding_retry_wait,
                    retry=retry_if_exception_type(EmbeddingError),
                    reraise=True,
                ):
                    with attempt:
                        return await self.embedder.embed(chunk.content)
            except EmbeddingError as e:
                log.warning("Chunk embedding failed, skipping", chunk_index=chunk.chunk_index, error=e.message)
                return None

    async def _notify(self, on_progress: Optional[ProgressCallback], event: ProgressEvent) -> None:
        if on_progress is None:
            return
        try:
            result = on_progress(event)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning("Progress callback failed", stage=event.stage.value, error=str(e))
