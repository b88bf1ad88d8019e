"""Application configuration and environment-driven settings.

Defines the Settings class based on pydantic-settings to centralize configuration for:
- API keys, model names and provider timeouts
- Data stores (PostgreSQL with pgvector, Redis)
- Chunking and embedding batch parameters
- Retrieval/generation knobs
- Content source adapters (HTTP fetcher, crawler, transcript API)
- The scheduled retrain lifecycle
- Logging and optional console tracing

A warning is logged if OPENAI_API_KEY is not set when not running in Docker.
"""
import logging
import os

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Strongly-typed application settings loaded from environment variables.

    Uses pydantic-settings to populate fields from a .env file or process env.
    See individual field names for semantics and safe defaults.
    """
    # Required
    OPENAI_API_KEY: str = Field(default="", description="OpenAI API key")

    # Models
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_EMBEDDING_MODEL: str = "text-embedding-3-small"  # 1536 dims
    OPENAI_TIMEOUT_SECONDS: float = 30.0

    # Data stores
    DATABASE_URL: str = "postgresql+psycopg2://rag_user:rag_pass@db:5432/rag_db"
    REDIS_URL: str = "redis://redis:6379/0"
    VECTOR_INDEX_LISTS: int = 100
    # Query-time ANN breadth; the scope filter is applied after the index scan
    VECTOR_IVFFLAT_PROBES: int = 10
    VECTOR_HNSW_EF_SEARCH: int = 100
    VECTOR_ITERATIVE_SCAN: bool = True  # pgvector >= 0.8 only

    # Ingestion
    CHUNK_SIZE: int = 500
    CHUNK_OVERLAP: int = 0
    EMBEDDING_BATCH_SIZE: int = 100

    # Retrieval/Generation
    TOP_K: int = 5
    RETRIEVAL_MIN_SIMILARITY: float = 0.25  # cosine, 0-1
    MAX_OUTPUT_TOKENS: int = 500

    # Content sources
    HTTP_TIMEOUT_SECONDS: float = 10.0
    HTTP_USER_AGENT: str = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
    HTTP_MAX_REDIRECTS: int = 5
    CRAWL_MAX_PAGES: int = 5
    CRAWL_MIN_WORDS: int = 50
    CRAWL_DELAY_SECONDS: float = 0.5
    TRANSCRIPT_API_URL: str = "https://transcriptapi.com/api/v2/youtube/transcript"
    TRANSCRIPT_API_KEY: str = ""

    # Scheduled retrain
    RETRAIN_ENABLED: bool = True
    RETRAIN_INTERVAL_SECONDS: float = 3600.0
    RETRAIN_INITIAL_DELAY_SECONDS: float = 10.0
    RETRAIN_PAGE_DELAY_SECONDS: float = 0.5
    RETRAIN_LOCK_BACKEND: str = "local"  # local | redis
    RETRAIN_LOCK_TTL_SECONDS: int = 3300

    # Logging / tracing
    LOG_LEVEL: str = "INFO"
    OTEL_CONSOLE_EXPORT: bool = False

    # Derived
    @property
    def EMBEDDING_DIM(self) -> int:
        """Embedding dimension for the configured embedding model.

        Returns:
            int: The vector dimension inferred from OPENAI_EMBEDDING_MODEL.
        """
        model = self.OPENAI_EMBEDDING_MODEL.lower()
        if "text-embedding-3-large" in model:
            return 3072
        # text-embedding-3-small, text-embedding-ada-002
        return 1536

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)


settings = Settings()

# Inside the API container the key must be set; locally only warn
if os.environ.get("RUNNING_IN_DOCKER", "0") == "0" and not settings.OPENAI_API_KEY:
    logger.warning("OPENAI_API_KEY not set. Set it in .env before ingesting or chatting.")
