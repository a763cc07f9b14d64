"""Shared configuration loaded from environment / .env file."""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal

from pydantic import Field
from pydantic_settings import BaseSettings

if TYPE_CHECKING:
    from kb_ingest.documents.models import ProcessingConfig


class Settings(BaseSettings):
    """Application-wide settings, populated from env vars or .env file."""

    # Processing defaults (overridable per call and per document)
    chunk_size: int = Field(default=500, gt=0, description="Maximum characters per chunk")
    chunk_overlap: int = Field(default=100, ge=0, description="Characters shared by consecutive chunks")
    max_retries: int = Field(default=3, ge=1, description="Embedding attempts per batch")
    batch_size: int = Field(default=20, ge=1, description="Chunks per embedding request")

    # Scheduling
    max_concurrent: int = Field(default=3, ge=1, description="Documents processed at the same time")
    retry_max_attempts: int = Field(
        default=5,
        ge=1,
        description="Documents with this many attempts are left for manual intervention",
    )

    # Embedding backoff (seconds)
    transient_backoff_base: float = 5.0
    default_backoff_base: float = 3.0
    max_backoff: float = 30.0
    throttle_delay: float = Field(default=0.5, description="Pause between successful embedding batches")

    # Embedding provider
    embedding_provider: Literal["huggingface", "openai"] = "huggingface"
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    embedding_api_key: str = Field(default="", description="API key for OpenAI-compatible endpoints")
    embedding_base_url: str = Field(
        default="",
        description=(
            "Base URL of an OpenAI-compatible embeddings API. Leave empty to use "
            "OpenAI cloud, e.g. 'https://dashscope.aliyuncs.com/compatible-mode/v1'"
        ),
    )

    # Vector store
    chroma_host: str = "localhost"
    chroma_port: int = 8000
    chroma_collection: str = "knowledge_base"

    # Document records
    database_url: str = "sqlite+aiosqlite:///./kb_ingest.db"

    # File storage
    storage_mode: Literal["local", "s3", "oss"] = "local"
    upload_dir: str = "uploads"
    temp_dir: str = ".temp"
    s3_bucket: str = ""
    s3_endpoint_url: str = Field(default="", description="Custom endpoint for MinIO / S3-compatible stores")
    s3_region: str = "us-east-1"
    s3_access_key: str = ""
    s3_secret_key: str = ""

    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "env_prefix": "KB_"}

    def processing_defaults(self) -> ProcessingConfig:
        """Return the global :class:`ProcessingConfig` defaults."""
        from kb_ingest.documents.models import ProcessingConfig

        return ProcessingConfig(
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
            max_retries=self.max_retries,
            batch_size=self.batch_size,
        )


# Singleton — import `settings` wherever needed.
settings = Settings()
