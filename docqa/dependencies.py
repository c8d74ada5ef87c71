"""
Service wiring.

Every external client is constructed once per process from ``Settings`` and
handed to the services that need it. The FastAPI app owns the container;
tests build one from doubles.
"""
from dataclasses import dataclass

from fastapi import Request
from openai import AsyncOpenAI
from pinecone import Pinecone
from supabase import create_client

from docqa.config import Settings
from docqa.services.answer_composer import AnswerComposer
from docqa.services.chat_service import ChatService
from docqa.services.chunking_service import ChunkingService
from docqa.services.document_repository import DocumentRepository
from docqa.services.documents import DocumentManager
from docqa.services.embedding_service import EmbeddingService
from docqa.services.generation_service import GenerationService
from docqa.services.ingestion import IngestionOrchestrator
from docqa.services.retrieval import RetrievalEngine
from docqa.services.storage import ObjectStorage
from docqa.services.text_extractor import TextExtractor
from docqa.services.vector_store import VectorStore


@dataclass
class ServiceContainer:
    settings: Settings
    ingestion: IngestionOrchestrator
    chat: ChatService
    documents: DocumentManager


def build_services(
    settings: Settings,
    *,
    storage: ObjectStorage,
    repository: DocumentRepository,
    vector_store: VectorStore,
    embedder: EmbeddingService,
    generator: GenerationService,
) -> ServiceContainer:
    """Assemble the pipeline from already-constructed adapters."""
    ingestion = IngestionOrchestrator(
        storage=storage,
        repository=repository,
        extractor=TextExtractor(),
        chunker=ChunkingService(settings.chunk_size, settings.chunk_overlap),
        embedder=embedder,
        vector_store=vector_store,
        ingestion_concurrency=settings.ingestion_concurrency,
        embedding_concurrency=settings.embedding_concurrency,
        embedding_max_attempts=settings.embedding_max_attempts,
    )
    retrieval = RetrievalEngine(
        embedder=embedder,
        vector_store=vector_store,
        top_k=settings.retrieval_top_k,
        similarity_threshold=settings.similarity_threshold,
        candidate_factor=settings.retrieval_candidate_factor,
    )
    chat = ChatService(
        repository=repository,
        retrieval=retrieval,
        composer=AnswerComposer(generator, history_turns=settings.history_turns),
        max_question_chars=settings.max_question_chars,
    )
    return ServiceContainer(
        settings=settings,
        ingestion=ingestion,
        chat=chat,
        documents=DocumentManager(repository, storage, vector_store),
    )


def build_services_from_settings(settings: Settings) -> ServiceContainer:
    """Create the real Supabase, Pinecone and OpenAI clients and wire them up."""
    supabase = create_client(settings.supabase_url, settings.supabase_service_key)
    openai_client = AsyncOpenAI(api_key=settings.openai_api_key)
    index = Pinecone(api_key=settings.pinecone_api_key).Index(settings.pinecone_index)

    return build_services(
        settings,
        storage=ObjectStorage(supabase, settings.supabase_storage_bucket),
        repository=DocumentRepository(supabase),
        vector_store=VectorStore(index, settings.pinecone_namespace),
        embedder=EmbeddingService(
            openai_client,
            model=settings.embedding_model,
            dimensions=settings.embedding_dimensions,
            timeout=settings.embedding_timeout,
        ),
        generator=GenerationService(
            openai_client,
            model=settings.generation_model,
            temperature=settings.generation_temperature,
            top_p=settings.generation_top_p,
            max_tokens=settings.generation_max_tokens,
            timeout=settings.generation_timeout,
        ),
    )


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services
