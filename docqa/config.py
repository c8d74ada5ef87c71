"""
Application Configuration
Loads environment variables and provides typed configuration.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, model_validator
from functools import lru_cache

from docqa.errors import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # OpenAI
    openai_api_key: str

    # Pinecone
    pinecone_api_key: str
    pinecone_index: str = "docqa-chunks"
    pinecone_namespace: str = "chunks"

    # Supabase
    supabase_url: str
    supabase_service_key: str
    supabase_storage_bucket: str = "FileUpload"

    # App Settings
    environment: str = "development"
    log_level: str = "INFO"

    # Chunking
    chunk_size: int = Field(default=1000, gt=0)
    chunk_overlap: int = Field(default=200, ge=0)

    # Embedding Settings
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 768
    embedding_timeout: float = 30.0
    embedding_concurrency: int = Field(default=4, ge=1)
    embedding_max_attempts: int = Field(default=3, ge=1)
    ingestion_concurrency: int = Field(default=2, ge=1)

    # Generation Settings
    generation_model: str = "gpt-4o-mini"
    generation_temperature: float = 0.7
    generation_top_p: float = 0.95
    generation_max_tokens: int = 1024
    generation_timeout: float = 60.0

    # Retrieval Settings
    # Untuned defaults carried over from the first deployment.
    retrieval_top_k: int = Field(default=5, ge=1)
    similarity_threshold: float = 0.1
    retrieval_candidate_factor: int = Field(default=2, ge=1)

    # Chat Settings
    history_turns: int = Field(default=5, ge=0)
    max_question_chars: int = 2000

    @model_validator(mode="after")
    def check_chunk_window(self) -> "Settings":
        if self.chunk_overlap >= self.chunk_size:
            raise ConfigurationError(
                f"CHUNK_OVERLAP ({self.chunk_overlap}) must be smaller than "
                f"CHUNK_SIZE ({self.chunk_size})"
            )
        return self

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
