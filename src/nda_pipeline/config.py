"""
Configuration management for the NDA pipeline.

Loads settings from environment variables with sensible defaults.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Environment
    # ==========================================================================
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    log_level: str = "INFO"
    log_json: bool = False

    # ==========================================================================
    # Document Budgets
    # ==========================================================================
    max_file_size: int = Field(default=10 * 1024 * 1024, description="Upload limit in bytes")
    max_pages: int = Field(default=50, description="Page limit for paginated formats")
    token_budget: int = Field(default=200_000, description="Token allowance per analysis")
    tokenizer_encoding: str = "cl100k_base"

    # ==========================================================================
    # Chunking
    # ==========================================================================
    chunk_max_tokens: int = 500
    chunk_overlap_tokens: int = 50

    # ==========================================================================
    # Extraction Quality
    # ==========================================================================
    extraction_min_text_length: int = 100
    extraction_min_text_ratio: float = 0.001
    extraction_large_file_bytes: int = 100_000
    extraction_confidence_threshold: float = 0.5

    # ==========================================================================
    # Embeddings
    # ==========================================================================
    embedding_provider: Literal["voyage", "local"] = "voyage"
    voyage_api_key: str = Field(default="", description="Voyage AI API key")
    voyage_model: str = "voyage-law-2"
    voyage_base_url: str = "https://api.voyageai.com/v1"
    embedding_dimension: int = 1024
    embedding_batch_limit: int = 128
    embedding_timeout: float = 30.0
    local_embedding_model: str = "all-MiniLM-L6-v2"

    # ==========================================================================
    # Embedding Cache
    # ==========================================================================
    embedding_cache_backend: Literal["memory", "redis"] = "memory"
    embedding_cache_max_entries: int = 10_000
    embedding_cache_ttl: int = 3600
    redis_url: str = "redis://localhost:6379/0"

    # ==========================================================================
    # Qdrant
    # ==========================================================================
    vector_backend: Literal["memory", "qdrant"] = "qdrant"
    qdrant_host: str = "localhost"
    qdrant_port: int = 6333
    qdrant_reference_collection: str = "reference_embeddings"
    qdrant_tenant_collection: str = "tenant_embeddings"

    # ==========================================================================
    # PostgreSQL
    # ==========================================================================
    progress_backend: Literal["memory", "postgres"] = "postgres"
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "nda"
    postgres_password: str = "nda_dev_password"
    postgres_db: str = "nda_pipeline"
    database_url: str | None = None

    @property
    def postgres_url(self) -> str:
        """Get PostgreSQL connection URL."""
        if self.database_url:
            return self.database_url
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # ==========================================================================
    # Bootstrap Ingestion
    # ==========================================================================
    bootstrap_batch_size: int = 128
    bootstrap_rate_limit_delay: float = 0.2  # seconds between batches
    bootstrap_error_rate_threshold: float = 0.10
    bootstrap_min_records_for_breaker: int = 100
    bootstrap_max_concurrent_sources: int = 2
    bootstrap_embed_max_attempts: int = 3
    datasets_dir: Path = Path("./data/datasets")

    # ==========================================================================
    # Retrieval
    # ==========================================================================
    retrieval_top_k: int = 10
    retrieval_similarity_threshold: float = 0.5

    @field_validator("datasets_dir", mode="before")
    @classmethod
    def convert_to_path(cls, v: str | Path) -> Path:
        """Convert string paths to Path objects."""
        return Path(v) if isinstance(v, str) else v

    @model_validator(mode="after")
    def check_limits(self) -> "Settings":
        if self.bootstrap_batch_size > self.embedding_batch_limit:
            raise ValueError(
                f"bootstrap_batch_size ({self.bootstrap_batch_size}) exceeds "
                f"embedding_batch_limit ({self.embedding_batch_limit})"
            )
        if not 0 <= self.chunk_overlap_tokens < self.chunk_max_tokens:
            raise ValueError("chunk_overlap_tokens must be in [0, chunk_max_tokens)")
        return self


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
